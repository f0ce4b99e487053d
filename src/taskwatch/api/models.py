"""Request payloads for the job API."""

from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_LANGUAGES = ("EN", "BG")
SUPPORTED_STYLES = ("kids",)


@dataclass(slots=True)
class BookRequest:
    """Inputs for one book generation job."""

    title: str
    hero_name: str
    language: str = "BG"
    style: str = "kids"
    chapters: int = 1
    include_images: bool = True

    def to_payload(self) -> dict[str, object]:
        """Serialize into the field names the generation backend expects."""

        return {
            "title": self.title,
            "language": self.language.lower(),
            "style": self.style,
            "chapters": self.chapters,
            "include_images": self.include_images,
            "characters": [self.hero_name],
        }

    def to_raw_payload(self) -> dict[str, object]:
        """Alternate shape using the request's own field names."""

        return {
            "title": self.title,
            "language": self.language,
            "style": self.style,
            "num_chapters": self.chapters,
            "include_images": self.include_images,
            "hero_name": self.hero_name,
        }

    def payload_shapes(self) -> tuple[dict[str, object], ...]:
        return (self.to_payload(), self.to_raw_payload())
