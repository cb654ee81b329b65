"""Option records for the raster and vector pipelines.

Options usually arrive as strings (query parameters, form fields) or as
decoded JSON. ``from_mapping`` accepts either camelCase or snake_case keys
and raises :class:`InputError` naming the key that could not be parsed.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Mapping, Optional, Tuple, Union

from .errors import InputError
from .raster import Color, Palette

DETECT_METHODS = ("auto", "runs", "edge")
EDGE_METHODS = ("tiled", "legacy")
DOWNSCALE_METHODS = ("dominant", "median", "mode", "mean", "nearest", "content-adaptive")
PRE_FILTERS = ("bilateral", "median")
POST_FILTERS = ("gaussian", "median")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}
_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL.sub("_", key).lower()


def _normalise(mapping: Any, key: str = "options") -> dict:
    if mapping is None:
        return {}
    if not isinstance(mapping, Mapping):
        raise InputError(f"{key}: expected an object, got {mapping!r}")
    return {_snake(str(name)): value for name, value in mapping.items()}


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise InputError(f"{key}: expected a boolean, got {value!r}")


def _as_int(value: Any, key: str, minimum: int = 0, maximum: Optional[int] = None) -> int:
    try:
        number = int(float(value))
    except (TypeError, ValueError) as exc:
        raise InputError(f"{key}: expected an integer, got {value!r}") from exc
    if number < minimum or (maximum is not None and number > maximum):
        raise InputError(f"{key}: {number} is out of range")
    return number


def _as_float(value: Any, key: str, minimum: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InputError(f"{key}: expected a number, got {value!r}") from exc
    if number < minimum:
        raise InputError(f"{key}: {number} is out of range")
    return number


def _as_choice(value: Any, key: str, choices: Tuple[str, ...]) -> str:
    text = str(value).strip().lower()
    if text not in choices:
        raise InputError(f"{key}: expected one of {', '.join(choices)}, got {value!r}")
    return text


def _as_scale(value: Any) -> Optional[int]:
    if value is None or value == "" or str(value).lower() == "auto":
        return None
    if isinstance(value, str) and "," in value:
        value = value.split(",")[0]
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    return _as_int(value, "manual_scale", minimum=1)


def _as_alpha_threshold(value: Any) -> Optional[int]:
    if value is None or value is False or str(value).strip().lower() in ("", "none", "off", "false"):
        return None
    return _as_int(value, "alpha_threshold", minimum=0, maximum=255)


def _as_palette(value: Any) -> Optional[Palette]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = [part.strip() for part in re.split(r";|,(?![^(]*\))", value) if part.strip()]
    colors = tuple(Color.parse(item) for item in value)
    return colors or None


@dataclass(frozen=True)
class CleanupOptions:
    morph: bool = False
    jaggy: bool = False


@dataclass(frozen=True)
class PipelineOptions:
    max_colors: int = 32
    auto_color_count: bool = False
    manual_scale: Optional[int] = None
    detect_method: str = "auto"
    edge_detect_method: str = "tiled"
    downscale_method: str = "dominant"
    dom_mean_threshold: float = 0.15
    cleanup: CleanupOptions = field(default_factory=CleanupOptions)
    fixed_palette: Optional[Palette] = None
    alpha_threshold: Optional[int] = 128
    snap_grid: bool = True

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]], base: Optional["PipelineOptions"] = None) -> "PipelineOptions":
        values = _normalise(mapping)
        options = base or cls()
        updates: dict = {}

        if "max_colors" in values:
            updates["max_colors"] = _as_int(values["max_colors"], "max_colors", minimum=1, maximum=256)
        if "auto_color_count" in values:
            updates["auto_color_count"] = _as_bool(values["auto_color_count"], "auto_color_count")
        if "manual_scale" in values:
            updates["manual_scale"] = _as_scale(values["manual_scale"])
        if "detect_method" in values:
            method = str(values["detect_method"]).strip().lower()
            # "edge-tiled" / "edge-legacy" select both knobs at once
            if method.startswith("edge-"):
                updates["edge_detect_method"] = _as_choice(method[5:], "detect_method", EDGE_METHODS)
                method = "edge"
            updates["detect_method"] = _as_choice(method, "detect_method", DETECT_METHODS)
        if "edge_detect_method" in values:
            updates["edge_detect_method"] = _as_choice(
                values["edge_detect_method"], "edge_detect_method", EDGE_METHODS
            )
        if "downscale_method" in values:
            updates["downscale_method"] = _as_choice(
                values["downscale_method"], "downscale_method", DOWNSCALE_METHODS
            )
        if "dom_mean_threshold" in values:
            threshold = _as_float(values["dom_mean_threshold"], "dom_mean_threshold")
            if threshold > 1:
                raise InputError("dom_mean_threshold: expected a fraction between 0 and 1")
            updates["dom_mean_threshold"] = threshold
        if "alpha_threshold" in values:
            updates["alpha_threshold"] = _as_alpha_threshold(values["alpha_threshold"])
        if "snap_grid" in values:
            updates["snap_grid"] = _as_bool(values["snap_grid"], "snap_grid")
        if "fixed_palette" in values:
            updates["fixed_palette"] = _as_palette(values["fixed_palette"])

        cleanup = _normalise(values["cleanup"]) if isinstance(values.get("cleanup"), Mapping) else {}
        for name in ("morph", "jaggy"):
            for key in (name, f"cleanup_{name}"):
                if key in values:
                    cleanup[name] = values[key]
        if cleanup:
            updates["cleanup"] = CleanupOptions(
                morph=_as_bool(cleanup.get("morph", options.cleanup.morph), "cleanup.morph"),
                jaggy=_as_bool(cleanup.get("jaggy", options.cleanup.jaggy), "cleanup.jaggy"),
            )

        return replace(options, **updates)


@dataclass(frozen=True)
class PreProcessOptions:
    enabled: bool = False
    filter: str = "bilateral"
    value: int = 15
    morphology: bool = True
    morphology_kernel: int = 3


@dataclass(frozen=True)
class QuantizeOptions:
    enabled: bool = False
    max_colors: Union[int, str] = 16


@dataclass(frozen=True)
class PostProcessOptions:
    enabled: bool = False
    filter: str = "gaussian"
    value: int = 3


@dataclass(frozen=True)
class TraceOptions:
    ltres: float = 1.0
    pathomit: int = 8
    numberofcolors: int = 16
    strokewidth: float = 1.0
    roundcoords: int = 1
    viewbox: bool = True
    scale: float = 1.0


def _trace_options(values: dict, base: TraceOptions) -> TraceOptions:
    return TraceOptions(
        ltres=_as_float(values.get("ltres", base.ltres), "ltres"),
        pathomit=_as_int(values.get("pathomit", base.pathomit), "pathomit"),
        numberofcolors=_as_int(
            values.get("numberofcolors", base.numberofcolors), "numberofcolors", minimum=1, maximum=256
        ),
        strokewidth=_as_float(values.get("strokewidth", base.strokewidth), "strokewidth"),
        roundcoords=_as_int(values.get("roundcoords", base.roundcoords), "roundcoords", maximum=6),
        viewbox=_as_bool(values.get("viewbox", base.viewbox), "viewbox"),
        scale=_as_float(values.get("scale", base.scale), "scale"),
    )


@dataclass(frozen=True)
class VectorOptions:
    pre_process: PreProcessOptions = field(default_factory=PreProcessOptions)
    quantize: QuantizeOptions = field(default_factory=QuantizeOptions)
    post_process: PostProcessOptions = field(default_factory=PostProcessOptions)
    trace: TraceOptions = field(default_factory=TraceOptions)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]], base: Optional["VectorOptions"] = None) -> "VectorOptions":
        values = _normalise(mapping)
        for key in [key for key in values if "." in key]:
            section, name = key.split(".", 1)
            nested = values.get(section)
            values[section] = dict(nested) if isinstance(nested, Mapping) else {}
            values[section][name] = values.pop(key)
        options = base or cls()

        pre = _normalise(values.get("pre_process"), "pre_process")
        pre_defaults = options.pre_process
        pre_process = PreProcessOptions(
            enabled=_as_bool(pre.get("enabled", pre_defaults.enabled), "pre_process.enabled"),
            filter=_as_choice(pre.get("filter", pre_defaults.filter), "pre_process.filter", PRE_FILTERS),
            value=_as_int(pre.get("value", pre_defaults.value), "pre_process.value", minimum=1),
            morphology=_as_bool(pre.get("morphology", pre_defaults.morphology), "pre_process.morphology"),
            morphology_kernel=_as_int(
                pre.get("morphology_kernel", pre_defaults.morphology_kernel),
                "pre_process.morphology_kernel",
                minimum=1,
            ),
        )

        quant = _normalise(values.get("quantize"), "quantize")
        max_colors: Union[int, str] = quant.get("max_colors", options.quantize.max_colors)
        if str(max_colors).strip().lower() == "auto":
            max_colors = "auto"
        else:
            max_colors = _as_int(max_colors, "quantize.max_colors", minimum=1, maximum=256)
        quantize = QuantizeOptions(
            enabled=_as_bool(quant.get("enabled", options.quantize.enabled), "quantize.enabled"),
            max_colors=max_colors,
        )

        post = _normalise(values.get("post_process"), "post_process")
        post_defaults = options.post_process
        post_process = PostProcessOptions(
            enabled=_as_bool(post.get("enabled", post_defaults.enabled), "post_process.enabled"),
            filter=_as_choice(post.get("filter", post_defaults.filter), "post_process.filter", POST_FILTERS),
            value=_as_int(post.get("value", post_defaults.value), "post_process.value", minimum=1),
        )

        trace_values = _normalise(values["trace"]) if isinstance(values.get("trace"), Mapping) else {}
        for key in ("ltres", "pathomit", "numberofcolors", "strokewidth", "roundcoords", "viewbox", "scale"):
            if key in values:
                trace_values[key] = values[key]
        trace = _trace_options(trace_values, options.trace)

        return cls(pre_process=pre_process, quantize=quantize, post_process=post_process, trace=trace)
