"""Loader for kikai.yml manifests.

Parses the YAML document and validates it into the types of
``kikai.config.manifest``. Every error message names the offending document
path, e.g. ``modules.zlib.sources[0].url is missing.``

Example manifest:

    install-root: out
    toolchain:
      api: "21"
      stl: libc++
      standalone: false
      platforms: [arm64, x86_64]
    modules:
      zlib:
        sources:
          - url: https://zlib.net/zlib-1.3.1.tar.gz
            strip-parents: 1
        build:
          type: simple
          steps:
            - name: build
              run: ./configure --prefix="$KIKAI_PREFIX" && make install
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from ..errors import KikaiError
from .manifest import (
    PLATFORM_ALIASES,
    PLATFORM_TRIPLES,
    AutotoolsBuild,
    BuildSpec,
    BuildStep,
    Manifest,
    ModuleSpec,
    SimpleBuild,
    SourceSpec,
    ToolchainSpec,
)

DEFAULT_MANIFEST = "kikai.yml"

_TYPE_NAMES = {
    str: "string",
    bool: "boolean",
    list: "list",
    dict: "mapping",
    int: "integer",
}


class ManifestError(KikaiError):
    """Raised when the manifest cannot be read or is invalid."""

    stage = "manifest"


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        return "mapping"
    return _TYPE_NAMES.get(type(value), type(value).__name__)


def _check_type(value: Any, expected: type, path: str) -> Any:
    # bool is an int subclass, never accept it where a number or string is wanted
    matches = isinstance(value, expected) and not (
        expected is not bool and isinstance(value, bool)
    )
    if expected is dict:
        matches = isinstance(value, Mapping)
    if not matches:
        raise ManifestError(
            f"Expected {path} to be a {_TYPE_NAMES[expected]}, got {_type_name(value)}."
        )
    return value


def _require(data: Mapping[str, Any], key: str, expected: type, path: str) -> Any:
    if key not in data or data[key] is None:
        raise ManifestError(f"{path} is missing.")
    return _check_type(data[key], expected, path)


def _optional(
    data: Mapping[str, Any], key: str, expected: type, path: str, default: Any = None
) -> Any:
    if key not in data or data[key] is None:
        return default
    return _check_type(data[key], expected, path)


def _string_like(data: Mapping[str, Any], key: str, path: str) -> str:
    """Read a required value that may be written as a bare number."""
    if key not in data or data[key] is None:
        raise ManifestError(f"{path} is missing.")
    value = data[key]
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return _check_type(value, str, path)


def parse_toolchain(data: Mapping[str, Any]) -> ToolchainSpec:
    api = _string_like(data, "api", "toolchain.api")
    stl = _require(data, "stl", str, "toolchain.stl")
    standalone = _optional(data, "standalone", bool, "toolchain.standalone", False)
    after = _optional(data, "after", str, "toolchain.after")

    raw_platforms = _require(data, "platforms", list, "toolchain.platforms")
    if not raw_platforms:
        raise ManifestError("toolchain.platforms must not be empty.")

    platforms: List[str] = []
    for i, item in enumerate(raw_platforms):
        name = _check_type(item, str, f"toolchain.platforms[{i}]")
        name = PLATFORM_ALIASES.get(name, name)
        if name not in PLATFORM_TRIPLES:
            raise ManifestError(f"Invalid toolchain platform: {item}")
        if name not in platforms:
            platforms.append(name)

    return ToolchainSpec(
        api=api,
        stl=stl,
        platforms=tuple(platforms),
        standalone=standalone,
        after=after,
    )


def _parse_strip_parents(value: Any, path: str) -> int:
    if isinstance(value, bool):
        raise ManifestError(f"Expected {path} to be an integer, got boolean.")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        try:
            result = int(value.strip())
        except ValueError:
            raise ManifestError(f"Expected {path} to be an integer, got {value!r}.")
    else:
        raise ManifestError(f"Expected {path} to be an integer, got {_type_name(value)}.")

    if result < -1:
        raise ManifestError(f"{path} must be -1 or greater, got {result}.")
    return result


def parse_sources(name: str, data: List[Any]) -> List[SourceSpec]:
    sources = []
    for i, item in enumerate(data):
        path = f"modules.{name}.sources[{i}]"
        source = _check_type(item, dict, path)
        url = _require(source, "url", str, f"{path}.url")
        after = _optional(source, "after", str, f"{path}.after")
        strip_parents = -1
        if source.get("strip-parents") is not None:
            strip_parents = _parse_strip_parents(
                source["strip-parents"], f"{path}.strip-parents"
            )
        sources.append(SourceSpec(url=url, after=after, strip_parents=strip_parents))
    return sources


def parse_dependencies(name: str, data: List[Any]) -> List[str]:
    dependencies = []
    for i, item in enumerate(data):
        dependencies.append(_check_type(item, str, f"modules.{name}.dependencies[{i}]"))
    return dependencies


def parse_build(name: str, data: Mapping[str, Any]) -> BuildSpec:
    prefix = f"modules.{name}.build"
    build_type = _require(data, "type", str, f"{prefix}.type")

    if build_type == "simple":
        raw_steps = _require(data, "steps", list, f"{prefix}.steps")
        steps = []
        for i, item in enumerate(raw_steps):
            step_path = f"{prefix}.steps[{i}]"
            step = _check_type(item, dict, step_path)
            steps.append(
                BuildStep(
                    name=_require(step, "name", str, f"{step_path}.name"),
                    run=_require(step, "run", str, f"{step_path}.run"),
                )
            )
        return SimpleBuild(steps=tuple(steps))

    if build_type == "autotools":
        return AutotoolsBuild(
            configure_options=_optional(
                data, "configure-options", str, f"{prefix}.configure-options"
            ),
            make_options=_optional(data, "make-options", str, f"{prefix}.make-options"),
            cflags=_optional(data, "cflags", str, f"{prefix}.cflags"),
            cppflags=_optional(data, "cppflags", str, f"{prefix}.cppflags"),
            ldflags=_optional(data, "ldflags", str, f"{prefix}.ldflags"),
        )

    raise ManifestError(f"{prefix}.type must be either simple or autotools.")


def parse_module(name: str, data: Mapping[str, Any]) -> ModuleSpec:
    sources = parse_sources(name, _require(data, "sources", list, f"modules.{name}.sources"))
    dependencies = parse_dependencies(
        name, _optional(data, "dependencies", list, f"modules.{name}.dependencies", [])
    )
    build = parse_build(name, _require(data, "build", dict, f"modules.{name}.build"))
    return ModuleSpec(
        name=name,
        sources=tuple(sources),
        dependencies=tuple(dependencies),
        build=build,
    )


def parse_manifest(data: Any, base_dir: Optional[Path] = None) -> Manifest:
    """Validate a decoded manifest document.

    Args:
        data: Decoded YAML document
        base_dir: Directory a relative install-root is resolved against

    Returns:
        Validated Manifest

    Raises:
        ManifestError: If the document is invalid
    """
    top = _check_type(data, dict, "<top-level>")

    install_root = Path(_require(top, "install-root", str, "install-root"))
    if not install_root.is_absolute() and base_dir is not None:
        install_root = Path(base_dir) / install_root

    toolchain = parse_toolchain(_require(top, "toolchain", dict, "toolchain"))

    modules: Dict[str, ModuleSpec] = {}
    for name, module_data in _require(top, "modules", dict, "modules").items():
        name = str(name)
        modules[name] = parse_module(name, _check_type(module_data, dict, f"modules.{name}"))

    return Manifest(install_root=install_root, toolchain=toolchain, modules=modules)


def load_manifest(path: Path) -> Manifest:
    """Read and validate a manifest file.

    Args:
        path: Path to kikai.yml

    Returns:
        Validated Manifest

    Raises:
        ManifestError: If the file cannot be read, parsed or validated
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as e:
        raise ManifestError(f"Failed to read {path}: {e}")
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            raise ManifestError(
                f"Failed to parse {path}:{mark.line + 1}:{mark.column + 1}: {e}"
            )
        raise ManifestError(f"Failed to parse {path}: {e}")

    return parse_manifest(data, base_dir=path.parent.resolve())
