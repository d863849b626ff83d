"""Lesson file header: ``@key: value`` lines before the body."""

from dataclasses import dataclass, field

_META_KEYS = ("title", "icon", "description", "order", "discussion")

# Block tags that belong to the body even when they appear in the header area.
_CONTENT_TAGS = ("quiz", "image", "img", "video", "audio", "section", "correct", "option")


@dataclass
class LessonMeta:
    title: str = ""
    icon: str = "📄"
    description: str = ""
    order: str = "99"
    discussion: str = ""
    is_exam: bool = False
    extra: list[str] = field(default_factory=list)


def parse_lesson(content: str) -> tuple[LessonMeta, str]:
    """Split a lesson file into its header metadata and body text."""
    meta = LessonMeta()
    body_lines: list[str] = []
    reading_meta = True

    for line in content.split("\n"):
        if not reading_meta:
            body_lines.append(line)
            continue

        trim = line.strip()
        if not trim:
            continue
        if not trim.startswith("@"):
            reading_meta = False
            body_lines.append(line)
            continue
        if trim.lower() == "@exam":
            meta.is_exam = True
            continue

        key, sep, value = trim[1:].partition(":")
        key = key.strip().lower()
        if not sep:
            meta.extra.append(line)
        elif key in _CONTENT_TAGS:
            reading_meta = False
            body_lines.append(line)
        elif key in _META_KEYS:
            setattr(meta, key, value.strip())
        else:
            meta.extra.append(line)

    return meta, "\n".join(body_lines).strip()


def render_lesson(meta: LessonMeta, body: str) -> str:
    """Inverse of :func:`parse_lesson` for the known keys."""
    lines = [f"@{key}: {getattr(meta, key)}" for key in _META_KEYS if getattr(meta, key)]
    if meta.is_exam:
        lines.append("@exam")
    lines.extend(meta.extra)
    return "\n".join(lines) + "\n\n" + body.strip() + "\n"
