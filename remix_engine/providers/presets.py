"""Style presets that rewrite a prompt before it reaches a provider."""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ValidationError


@dataclass(frozen=True)
class StylePreset:
    name: str
    endpoint: str
    template: str
    marker: str
    default_style: str | None = None

    def apply(self, prompt: str, style: str | None = None) -> str:
        text = prompt.strip()
        if self.marker.lower() in text.lower():
            return text
        return self.template.format(prompt=text, style=style or self.default_style or self.name)


PRESETS: dict[str, StylePreset] = {
    "ghibli": StylePreset(
        name="ghibli",
        endpoint="ghibli-image",
        template=(
            "Studio Ghibli style animation: {prompt}. Soft colors, whimsical atmosphere, detailed "
            "backgrounds, watercolor style painting, magical elements, inspired by Hayao Miyazaki's "
            "art direction."
        ),
        marker="Studio Ghibli style animation:",
    ),
    "cartoon": StylePreset(
        name="cartoon",
        endpoint="reference-image",
        template="{prompt} in {style} style. Clean lines, vibrant colors, simplified features, animated look.",
        marker="Clean lines, vibrant colors, simplified features, animated look.",
        default_style="cartoon",
    ),
    "action-figure": StylePreset(
        name="action-figure",
        endpoint="action-figure",
        template=(
            "Create a highly detailed, professional-quality product photo of an action figure: {prompt}. "
            "The figure should look like a real commercial toy with articulation points, detailed "
            "textures, realistic packaging design, and toy store lighting."
        ),
        marker="product photo of an action figure:",
    ),
}


def get_preset(name: str | None) -> StylePreset | None:
    if not name:
        return None
    key = name.strip().lower().replace("_", "-")
    preset = PRESETS.get(key)
    if preset is None:
        raise ValidationError(f"Unknown style preset: {name}", {"available": sorted(PRESETS)})
    return preset
