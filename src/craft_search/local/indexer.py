# src/craft_search/local/indexer.py

"""Writes rows into the search index on behalf of content services.

The search core never mutates the index while answering queries. Content
services call `index_content` inside their own transaction when a server,
resource, wiki page, post or collection is created, so the index row commits
(or rolls back) together with the content itself. `seed_keywords` installs the
built-in keyword dictionary used for query expansion.
"""

import datetime
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from craft_search import defaults
from craft_search.shared.models.db import (
    REFERENCE_COLUMNS,
    ContentType,
    SearchContent,
    SearchKeyword,
)

logger = logging.getLogger(__name__)

_IMAGE_PATTERN = re.compile(r"!\[.*?\]\(.*?\)")
_LINK_PATTERN = re.compile(r"\[(.*?)\]\(.*?\)")
_HEADER_PATTERN = re.compile(r"#{1,6}\s")
_BOLD_PATTERN = re.compile(r"(\*\*|__)(.*?)\1")
_ITALIC_PATTERN = re.compile(r"(\*|_)(.*?)\1")
_CODE_PATTERN = re.compile(r"`{1,3}.*?`{1,3}", re.DOTALL)
_LIST_PATTERN = re.compile(r"(\n- |\n\* |\n\d+\. )")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_VIDEO_PATTERN = re.compile(r"youtu\.?be")

WALL_OF_TEXT_LENGTH = 500


class ContentAnalyzer:
    """Heuristic content metrics cached on index rows at write time."""

    @staticmethod
    def calculate_length(content: Optional[str]) -> int:
        """Returns the character count of `content` without markdown markup.

        Images and code are removed entirely; links keep their text.
        """
        if not content:
            return 0
        stripped = _IMAGE_PATTERN.sub("", content)
        stripped = _LINK_PATTERN.sub(r"\1", stripped)
        stripped = _HEADER_PATTERN.sub("", stripped)
        stripped = _BOLD_PATTERN.sub(r"\2", stripped)
        stripped = _ITALIC_PATTERN.sub(r"\2", stripped)
        stripped = _CODE_PATTERN.sub("", stripped)
        return len(stripped.strip())

    @staticmethod
    def calculate_readability(content: Optional[str]) -> int:
        """Returns a 0-100 readability heuristic.

        Structure (headers +10, lists +10, code blocks +20), paragraph
        spacing (+30 when there are several paragraphs and none exceeds 500
        characters) and media (image +15, video link +15).
        """
        if not content:
            return 0
        score = 0
        if _HEADER_PATTERN.search(content):
            score += 10
        if _LIST_PATTERN.search(content):
            score += 10
        if "```" in content:
            score += 20

        paragraphs = _PARAGRAPH_SPLIT.split(content)
        has_wall_of_text = any(len(p) > WALL_OF_TEXT_LENGTH for p in paragraphs)
        if not has_wall_of_text and len(paragraphs) > 1:
            score += 30

        if _IMAGE_PATTERN.search(content):
            score += 15
        if _VIDEO_PATTERN.search(content):
            score += 15
        return min(score, 100)


def build_link(content_type: ContentType, ref_id: str, title: str) -> str:
    """Returns the site-relative link of a content item."""
    if content_type == ContentType.SERVER:
        return f"/servers/{ref_id}"
    if content_type == ContentType.RESOURCE:
        return f"/resources/{ref_id}"
    if content_type == ContentType.WIKI:
        return f"/wiki/{title}"
    if content_type == ContentType.POST:
        return f"/forum/posts/{ref_id}"
    return f"/collections/{ref_id}"


def index_content(
    session: Session,
    content_type: ContentType,
    ref_id: str,
    title: str,
    description: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    keywords: Optional[Sequence[str]] = None,
    thumbnail: Optional[str] = None,
    created_at: Optional[datetime.datetime] = None,
) -> SearchContent:
    """Adds the index row for a newly created content item.

    The row is added to `session` but not committed; it becomes visible to
    searches when the caller's transaction commits.

    Args:
        session: The caller's session, inside its write transaction.
        content_type: Variant of the content.
        ref_id: Id of the content in its owning table.
        title: Display title.
        description: Body or summary, truncated to `MAX_DESCRIPTION_LENGTH`.
        tags: Tag list.
        keywords: Extra search keywords.
        thumbnail: Optional thumbnail URL.
        created_at: Creation time. Defaults to now (UTC).

    Returns:
        The pending `SearchContent` row.

    Raises:
        ValueError: If `ref_id` or `title` is empty.
    """
    content_type = ContentType(content_type)
    if not ref_id:
        raise ValueError("A reference id is required to index content.")
    if not title or not title.strip():
        raise ValueError("A title is required to index content.")

    full_description = description or ""
    now = datetime.datetime.now(datetime.timezone.utc)
    row = SearchContent(
        type=content_type,
        link=build_link(content_type, ref_id, title),
        thumbnail=thumbnail,
        title=title.strip(),
        description=full_description[: defaults.MAX_DESCRIPTION_LENGTH],
        tags=list(tags or []),
        keywords=list(keywords or []),
        view_count=0,
        like_count=0,
        created_at=created_at or now,
        last_active=now,
        content_length=ContentAnalyzer.calculate_length(full_description),
        readability_score=float(ContentAnalyzer.calculate_readability(full_description)),
    )
    setattr(row, REFERENCE_COLUMNS[content_type], ref_id)
    session.add(row)
    logger.debug("Indexed %s %s ('%s').", content_type.value, ref_id, row.title)
    return row


# (term, synonyms, category)
DEFAULT_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...], str], ...] = (
    # Server genres
    ("야생", ("Survival", "서바이벌", "야생서버", "Wild", "Surv"), "GENRE"),
    ("마인팜", ("Minefarm", "마팜", "광산"), "GENRE"),
    ("스카이블록", ("Skyblock", "스블", "하늘섬"), "GENRE"),
    ("RPG", ("알피지", "Roleplay"), "GENRE"),
    ("약탈", ("Raiding", "PVP", "전쟁"), "GENRE"),
    ("인생게임", ("Life", "RealLife", "현실경제"), "GENRE"),
    ("포켓몬", ("Pixelmon", "픽셀몬"), "GENRE"),
    ("미니게임", ("Minigame", "Minigames"), "GENRE"),
    ("랜무", ("RandomWeapon", "랜덤무기"), "GENRE"),
    ("국가전쟁", ("NationWar", "국가"), "GENRE"),
    # Community slang and abbreviations
    ("섬손", ("섬세한손길", "Silk Touch", "실크터치"), "SLANG"),
    ("날카", ("날카로움", "Sharpness", "샤프니스"), "SLANG"),
    ("행운", ("Fortune", "포춘"), "SLANG"),
    ("내구", ("내구성", "Unbreaking", "언브레이킹"), "SLANG"),
    ("셜커", ("Shulker", "셜커박스"), "ITEM"),
    ("김치", ("썩은살점", "ZombieFlesh"), "SLANG"),
    ("징징이", ("주민", "Villager"), "SLANG"),
    ("황사", ("황금사과", "GoldenApple"), "ITEM"),
    ("엔더맨", ("Enderman",), "MOB"),
    ("크리퍼", ("Creeper", "폭발"), "MOB"),
    # Game terms
    ("쉐이더", ("Shader", "셰이더"), "GAME_TERM"),
    ("리소스팩", ("ResourcePack", "리팩", "TexturePack", "텍스쳐팩"), "GAME_TERM"),
    ("옵티파인", ("Optifine",), "MOD"),
    ("소듐", ("Sodium",), "MOD"),
    ("패브릭", ("Fabric",), "MOD_LOADER"),
    ("포지", ("Forge",), "MOD_LOADER"),
    ("모드", ("Mod", "Mods", "Mode"), "GAME_TERM"),
    # Communities
    ("우마공", ("우리들의마인크래프트공간", "Cafe"), "COMMUNITY"),
    ("한마포", ("한국마인크래프트포럼",), "COMMUNITY"),
    # Intent triggers
    ("서버추천", ("서버 찾아요", "할만한 서버"), "INTENT_TRIGGER"),
    ("오류해결", ("접속이 안돼요", "튕김"), "INTENT_TRIGGER"),
)


def _merge_entries(
    entries: Iterable[Tuple[str, Sequence[str], Optional[str]]]
) -> Dict[str, Tuple[List[str], Optional[str]]]:
    merged: Dict[str, Tuple[List[str], Optional[str]]] = {}
    for term, synonyms, category in entries:
        existing, existing_category = merged.get(term, ([], None))
        for synonym in synonyms:
            if synonym not in existing:
                existing.append(synonym)
        merged[term] = (existing, category or existing_category)
    return merged


def seed_keywords(
    session: Session,
    entries: Iterable[Tuple[str, Sequence[str], Optional[str]]] = DEFAULT_KEYWORDS,
) -> int:
    """Upserts keyword dictionary rows.

    Existing terms get their synonyms and category replaced; new terms are
    created with the default popularity. Duplicate terms in `entries` are
    merged. The caller commits.

    Args:
        session: An open session.
        entries: `(term, synonyms, category)` triples.

    Returns:
        The number of distinct terms written.
    """
    merged = _merge_entries(entries)
    existing_rows = {
        row.term: row
        for row in session.execute(
            select(SearchKeyword).where(SearchKeyword.term.in_(list(merged)))
        ).scalars()
    }
    for term, (synonyms, category) in merged.items():
        row = existing_rows.get(term)
        if row is None:
            session.add(SearchKeyword(term=term, synonyms=synonyms, category=category))
        else:
            row.synonyms = synonyms
            row.category = category
    logger.info("Seeded %d search keywords.", len(merged))
    return len(merged)
