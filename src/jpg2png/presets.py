"""Named parameter presets for the pipeline stages.

Each stage has ``default``, ``aggressive`` and ``conservative`` presets.
The noise reducer and quality enhancer also carry a ``photo`` tuning, the
quality enhancer a ``graphics`` tuning for logos and flat artwork, and the
size optimizer a ``web`` preset that fits images inside 1920x1920.
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from jpg2png.models import (
    NoiseReductionParams,
    OutputOptions,
    ProcessingOption,
    QualityEnhancementParams,
    SizeOptimizationParams,
    StageParameters,
    apply_overrides,
)

DEFAULT_PRESET = "default"

NOISE_REDUCTION_PRESETS: Mapping[str, NoiseReductionParams] = MappingProxyType(
    {
        DEFAULT_PRESET: NoiseReductionParams(),
        "photo": NoiseReductionParams(
            blur_sigma=0.2,
            sharpen_sigma=0.4,
            sharpen_flat=1.2,
            sharpen_jagged=0.8,
            brightness_adjust=1.01,
            saturation_adjust=0.99,
        ),
        "aggressive": NoiseReductionParams(
            blur_sigma=0.5,
            sharpen_sigma=0.7,
            sharpen_flat=0.8,
            sharpen_jagged=1.2,
            brightness_adjust=1.03,
            saturation_adjust=0.96,
        ),
        "conservative": NoiseReductionParams(
            blur_sigma=0.1,
            sharpen_sigma=0.3,
            sharpen_flat=1.0,
            sharpen_jagged=1.0,
            brightness_adjust=1.005,
            saturation_adjust=0.995,
        ),
    }
)

_QUALITY_PHOTO = QualityEnhancementParams(
    sharpen_sigma=1.2,
    sharpen_flat=1.0,
    sharpen_jagged=2.5,
    contrast_multiplier=1.08,
    brightness_multiplier=1.03,
)

_QUALITY_GRAPHICS = QualityEnhancementParams(
    sharpen_sigma=0.8,
    sharpen_flat=0.5,
    sharpen_jagged=1.5,
    normalize_enabled=False,
    contrast_multiplier=1.03,
    brightness_multiplier=1.01,
)

QUALITY_ENHANCEMENT_PRESETS: Mapping[str, QualityEnhancementParams] = MappingProxyType(
    {
        DEFAULT_PRESET: QualityEnhancementParams(),
        "photo": _QUALITY_PHOTO,
        "graphics": _QUALITY_GRAPHICS,
        "aggressive": _QUALITY_PHOTO,
        "conservative": _QUALITY_GRAPHICS,
    }
)

SIZE_OPTIMIZATION_PRESETS: Mapping[str, SizeOptimizationParams] = MappingProxyType(
    {
        DEFAULT_PRESET: SizeOptimizationParams(),
        "aggressive": SizeOptimizationParams(quality=70, compression_level=9),
        "conservative": SizeOptimizationParams(quality=85, compression_level=6),
        "web": SizeOptimizationParams(max_width=1920, max_height=1920),
    }
)

PRESETS: Mapping[ProcessingOption, Mapping[str, Any]] = MappingProxyType(
    {
        ProcessingOption.REDUCE_NOISE: NOISE_REDUCTION_PRESETS,
        ProcessingOption.IMPROVE_QUALITY: QUALITY_ENHANCEMENT_PRESETS,
        ProcessingOption.OPTIMIZE_SIZE: SIZE_OPTIMIZATION_PRESETS,
    }
)

# Wire keys of the per-request ``params`` object
_STAGE_KEYS = {
    "noiseReduction": ProcessingOption.REDUCE_NOISE,
    "qualityEnhancement": ProcessingOption.IMPROVE_QUALITY,
    "sizeOptimization": ProcessingOption.OPTIMIZE_SIZE,
}
_OUTPUT_KEYS = ("outputOptions", "pngOptions")


def get_preset(option: ProcessingOption | str, name: str) -> Any:
    """Look up a stage's preset by name.

    Args:
        option: Stage the preset belongs to
        name: Preset name, e.g. ``"aggressive"``

    Returns:
        The preset's parameter record

    Raises:
        ValueError: If the stage or the preset name is unknown
    """
    if isinstance(option, str):
        option = ProcessingOption.parse(option)

    table = PRESETS[option]
    try:
        return table[name]
    except KeyError:
        valid = ", ".join(sorted(table))
        raise ValueError(
            f"Unknown preset {name!r} for {option.value}. Expected one of {valid}"
        ) from None


def available_presets(option: ProcessingOption) -> tuple[str, ...]:
    """Preset names for a stage, sorted."""
    return tuple(sorted(PRESETS[option]))


def resolve_stage_params(option: ProcessingOption, data: Mapping[str, Any] | None) -> Any:
    """Build one stage's parameters from a preset name plus field overrides.

    ``data`` may hold a ``preset`` key and any number of parameter fields in
    camelCase or snake_case. Omitted fields come from the preset, which
    itself defaults to ``default``.

    Raises:
        ValueError: On unknown presets, unknown fields or invalid values
    """
    if not data:
        return get_preset(option, DEFAULT_PRESET)
    if not isinstance(data, Mapping):
        raise ValueError(f"Parameters for {option.value} must be an object")

    overrides = dict(data)
    preset_name = overrides.pop("preset", DEFAULT_PRESET)
    if not isinstance(preset_name, str):
        raise ValueError(f"Preset name for {option.value} must be a string")

    return apply_overrides(get_preset(option, preset_name), overrides)


def parse_stage_parameters(data: Mapping[str, Any] | None) -> StageParameters:
    """Parse the wire form of per-request stage parameters.

    Recognised keys are ``noiseReduction``, ``qualityEnhancement``,
    ``sizeOptimization`` and ``outputOptions`` (``pngOptions`` is accepted
    as an alias). An empty or missing mapping yields ``StageParameters()``.

    Raises:
        ValueError: If the mapping has unknown keys or invalid values
    """
    if not data:
        return StageParameters()
    if not isinstance(data, Mapping):
        raise ValueError("Stage parameters must be an object")

    unknown = set(data) - set(_STAGE_KEYS) - set(_OUTPUT_KEYS)
    if unknown:
        raise ValueError(f"Unknown stage parameter keys: {', '.join(sorted(unknown))}")

    stage_values = {
        option: resolve_stage_params(option, data.get(key)) for key, option in _STAGE_KEYS.items()
    }

    output: OutputOptions | None = None
    for key in _OUTPUT_KEYS:
        if data.get(key):
            if not isinstance(data[key], Mapping):
                raise ValueError(f"{key} must be an object")
            output = apply_overrides(output or OutputOptions(), data[key])

    return StageParameters(
        noise_reduction=stage_values[ProcessingOption.REDUCE_NOISE],
        quality_enhancement=stage_values[ProcessingOption.IMPROVE_QUALITY],
        size_optimization=stage_values[ProcessingOption.OPTIMIZE_SIZE],
        output=output,
    )
