"""Field template registry - canonical destination columns per content category.

Pure lookup over static tables. Lookups for unknown (category, field_key)
pairs return None; callers decide whether that is fatal.
"""

from __future__ import annotations

from collections import Counter

from ..errors import UnsupportedCategoryError
from ..schemas.fields import FieldTemplate, FieldType, SelectOption

CATEGORIES: tuple[str, ...] = ("books", "movies", "tv", "documentary")

SUBJECT_ID_KEY = "subject_id"
STATUS_KEY = "my_status"
RATING_KEY = "my_rating"

# Books have a "reading" state, movies go straight from wish to watched.
STATUS_OPTIONS: dict[str, tuple[SelectOption, ...]] = {
    "books": (
        SelectOption(name="想读", color=5),
        SelectOption(name="在读", color=4),
        SelectOption(name="读过", color=0),
    ),
    "movies": (
        SelectOption(name="想看", color=5),
        SelectOption(name="看过", color=0),
    ),
    "tv": (
        SelectOption(name="想看", color=5),
        SelectOption(name="在看", color=4),
        SelectOption(name="看过", color=0),
    ),
    "documentary": (
        SelectOption(name="想看", color=5),
        SelectOption(name="在看", color=4),
        SelectOption(name="看过", color=0),
    ),
}


def _text(key: str, name: str, description: str = "", *, auto_wrap: bool = False,
          required: bool = False) -> FieldTemplate:
    return FieldTemplate(
        key=key,
        name=name,
        type=FieldType.TEXT,
        ui_type="Text",
        property={"auto_wrap": True} if auto_wrap else None,
        required=required,
        description=description,
    )


def _url(key: str, name: str, description: str = "") -> FieldTemplate:
    return FieldTemplate(key=key, name=name, type=FieldType.URL, ui_type="Url", description=description)


def _datetime(key: str, name: str, description: str = "") -> FieldTemplate:
    return FieldTemplate(
        key=key,
        name=name,
        type=FieldType.DATETIME,
        ui_type="DateTime",
        property={"date_formatter": "yyyy/MM/dd", "auto_fill": False},
        description=description,
    )


def _status(category: str) -> FieldTemplate:
    return FieldTemplate(
        key=STATUS_KEY,
        name="我的状态",
        type=FieldType.SINGLE_SELECT,
        ui_type="SingleSelect",
        property={"options": [o.model_dump() for o in STATUS_OPTIONS[category]]},
        description="Personal status for the item",
    )


def _my_rating() -> FieldTemplate:
    return FieldTemplate(
        key=RATING_KEY,
        name="我的评分",
        type=FieldType.NUMBER,
        ui_type="Rating",
        property={"formatter": "0", "min": 1, "max": 5, "rating": {"symbol": "star"}},
        description="Personal rating, 1 to 5 stars",
    )


def _douban_rating() -> FieldTemplate:
    return FieldTemplate(
        key="douban_rating",
        name="豆瓣评分",
        type=FieldType.NUMBER,
        ui_type="Number",
        property={"formatter": "0.0", "range": {"min": 0, "max": 10}, "precision": 1},
        description="Average community rating",
    )


def _common(category: str) -> list[FieldTemplate]:
    return [
        _text(SUBJECT_ID_KEY, "Subject ID", "Stable subject identifier", required=True),
        _status(category),
        _my_rating(),
        _douban_rating(),
        _text("my_tags", "我的标签", "Personal tags"),
        _text("my_comment", "我的备注", "Personal comment"),
        _datetime("mark_date", "标记日期", "Date the item was marked"),
        _url("cover_image", "封面图", "Cover image URL"),
    ]


def _screen_people() -> list[FieldTemplate]:
    return [
        _text("summary", "剧情简介", "Plot summary", auto_wrap=True),
        _text("cast", "主演", "Main cast"),
        _text("director", "导演", "Directors"),
        _text("writer", "编剧", "Writers"),
        _text("country", "制片地区", "Production countries"),
        _text("language", "语言", "Languages"),
    ]


def _build_templates(category: str) -> tuple[FieldTemplate, ...]:
    templates = _common(category)
    if category == "books":
        templates += [
            _text("title", "书名", "Book title"),
            _text("subtitle", "副标题", "Subtitle"),
            _text("original_title", "原作名", "Original title"),
            _text("author", "作者", "Authors"),
            _text("translator", "译者", "Translators"),
            _text("publisher", "出版社", "Publisher"),
            _text("publish_date", "出版年份", "Publication date"),
            _text("summary", "内容简介", "Book summary", auto_wrap=True),
        ]
    elif category == "movies":
        templates += [
            _text("title", "电影名", "Movie title"),
            _text("genre", "类型", "Genres"),
            _text("duration", "片长", "Running time"),
            # Kept as text: release dates carry region annotations.
            _text("release_date", "上映日期", "Release dates by region"),
        ]
        templates += _screen_people()
    else:
        templates += [
            _text("title", "片名", "Series title"),
            _text("genre", "类型", "Genres"),
            _text("episode_duration", "单集片长", "Episode running time"),
            _text("episode_count", "集数", "Number of episodes"),
            _text("first_air_date", "首播日期", "First air dates by region"),
        ]
        templates += _screen_people()
    return tuple(templates)


_TEMPLATES: dict[str, dict[str, FieldTemplate]] = {
    category: {t.key: t for t in _build_templates(category)} for category in CATEGORIES
}


def supported_categories() -> list[str]:
    return list(CATEGORIES)


def template_for(category: str, field_key: str) -> FieldTemplate | None:
    return _TEMPLATES.get(category, {}).get(field_key)


def status_options_for(category: str) -> list[SelectOption]:
    return list(STATUS_OPTIONS.get(category, ()))


def is_supported(field_key: str, category: str) -> bool:
    return field_key in _TEMPLATES.get(category, {})


def templates_for(category: str) -> list[FieldTemplate]:
    """All templates of a category, in registry order."""
    if category not in _TEMPLATES:
        raise UnsupportedCategoryError(category)
    return list(_TEMPLATES[category].values())


def required_field_keys(category: str) -> list[str]:
    return [t.key for t in templates_for(category) if t.required]


def field_type_distribution(category: str) -> dict[str, int]:
    return dict(Counter(t.ui_type for t in templates_for(category)))


def validate_category_templates(category: str) -> list[str]:
    """Return problems with a category's template set (empty when valid)."""
    problems: list[str] = []
    templates = _TEMPLATES.get(category)
    if templates is None:
        return [f"unsupported category: {category}"]

    for key in (SUBJECT_ID_KEY, STATUS_KEY):
        if key not in templates:
            problems.append(f"missing required template: {key}")

    status = templates.get(STATUS_KEY)
    if status is not None:
        options = (status.property or {}).get("options")
        if not options:
            problems.append("status template has no options")

    rating = templates.get(RATING_KEY)
    if rating is not None:
        prop = rating.property or {}
        if not prop.get("formatter"):
            problems.append("rating template is missing formatter")
        if not prop.get("rating"):
            problems.append("rating template is missing rating config")

    return problems
