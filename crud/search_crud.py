"""Relevance-ranked search over scripts and projects.

SQL narrows the candidates to what the caller may see and what the hard
filters allow. Term matching and ranking happen here, on casefolded text,
so the same weights and the same Unicode handling apply whatever the
backing database.
"""

import logging
import math
import re
from sqlalchemy import or_
from sqlalchemy.orm import Session
from core.config import settings
from models.base import as_utc
from models.project import Project
from models.script import Script
from schemas.common import coerce
from schemas.search_schema import GlobalSearchResult, ProjectHit, SearchFilters, SearchHit, Suggestions

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r"\w+", re.UNICODE)
PROJECT_DESCRIPTION_WEIGHT = 0.5


def fold(text: str | None) -> str:
    return (text or "").casefold()


def tokenize(text: str | None) -> list[str]:
    if not text:
        return []
    return TOKEN_RE.findall(fold(text))


def _query_terms(query: str | None) -> list[str]:
    # de-duplicated, order kept
    return list(dict.fromkeys(tokenize(query)))


def _field_score(tokens: list[str], terms: list[str], weight: float) -> float:
    if not tokens or weight <= 0:
        return 0.0
    score = 0.0
    for term in terms:
        tf = tokens.count(term)
        if tf:
            score += weight * (1 + math.log(tf))
    return score


def score_script(script: Script, terms: list[str], phrase: str = "") -> float:
    title = fold(script.title)
    tag_tokens = [token for tag in script.tags or [] for token in tokenize(tag)]
    score = (
        _field_score(tokenize(title), terms, settings.SEARCH_TITLE_WEIGHT)
        + _field_score(tag_tokens, terms, settings.SEARCH_TAG_WEIGHT)
        + _field_score(tokenize(script.content), terms, settings.SEARCH_CONTENT_WEIGHT)
    )
    if score and len(terms) > 1 and phrase and phrase in title:
        score += settings.SEARCH_TITLE_WEIGHT
    return round(score, 6)


def score_project(project: Project, terms: list[str]) -> float:
    score = _field_score(tokenize(project.title), terms, settings.SEARCH_TITLE_WEIGHT) + _field_score(
        tokenize(project.description), terms, settings.SEARCH_TITLE_WEIGHT * PROJECT_DESCRIPTION_WEIGHT
    )
    return round(score, 6)


def _rank_key(score: float, updated_at, identifier: str):
    stamp = as_utc(updated_at).timestamp() if updated_at is not None else 0.0
    return (-score, -stamp, identifier)


def search(
    db: Session,
    user_id: str,
    query: str,
    filters: SearchFilters | dict | None = None,
    skip: int = 0,
    limit: int = 20,
) -> list[SearchHit]:
    """Scripts matching ``query``, best first.

    Blank queries return nothing. Filters are hard constraints applied before
    ranking; ties on score go to the most recently updated script.
    """
    terms = _query_terms(query)
    if not terms:
        return []
    filters = coerce(SearchFilters, filters)

    q = db.query(Script)
    if filters.include_public:
        q = q.join(Project, Project.id == Script.project_id).filter(
            or_(Script.user_id == user_id, Project.is_public.is_(True))
        )
    else:
        q = q.filter(Script.user_id == user_id)
    if filters.content_type is not None:
        q = q.filter(Script.content_type == filters.content_type.value)
    if filters.status is not None:
        q = q.filter(Script.status == filters.status.value)
    if filters.project_id is not None:
        q = q.filter(Script.project_id == filters.project_id)

    required_tags = {fold(tag).strip() for tag in filters.tags if tag.strip()}
    phrase = " ".join(terms)
    hits = []
    for script in q.populate_existing().all():
        if required_tags and not required_tags <= {fold(tag) for tag in script.tags or []}:
            continue
        score = score_script(script, terms, phrase)
        if score > 0:
            hits.append(SearchHit(script=script, score=score))
    hits.sort(key=lambda hit: _rank_key(hit.score, hit.script.updated_at, hit.script.id))
    logger.debug("Search for %r by %s matched %d scripts", query, user_id, len(hits))
    return hits[skip: skip + limit]


def search_projects(
    db: Session,
    user_id: str,
    query: str,
    include_public: bool = False,
    skip: int = 0,
    limit: int = 20,
) -> list[ProjectHit]:
    terms = _query_terms(query)
    if not terms:
        return []
    q = db.query(Project)
    if include_public:
        q = q.filter(or_(Project.user_id == user_id, Project.is_public.is_(True)))
    else:
        q = q.filter(Project.user_id == user_id)
    hits = []
    for project in q.populate_existing().all():
        score = score_project(project, terms)
        if score > 0:
            hits.append(ProjectHit(project=project, score=score))
    hits.sort(key=lambda hit: _rank_key(hit.score, hit.project.updated_at, hit.project.id))
    return hits[skip: skip + limit]


def global_search(
    db: Session,
    user_id: str,
    query: str,
    filters: SearchFilters | dict | None = None,
    limit: int = 20,
    include_scripts: bool = True,
    include_projects: bool = True,
) -> GlobalSearchResult:
    filters = coerce(SearchFilters, filters)
    per_kind = max(1, math.ceil(limit / 2))
    scripts = search(db, user_id, query, filters, limit=per_kind) if include_scripts else []
    projects = (
        search_projects(db, user_id, query, include_public=filters.include_public, limit=per_kind)
        if include_projects
        else []
    )
    return GlobalSearchResult(scripts=scripts, projects=projects)


def _matching(values, needle: str, limit: int) -> list[str]:
    # values starting with the text first, then the other matches
    found = {value for value in values if value and needle in fold(value)}
    return sorted(found, key=lambda value: (not fold(value).startswith(needle), fold(value), value))[:limit]


def suggest(db: Session, user_id: str, text: str, limit: int = 10) -> Suggestions:
    """Script titles, project titles and tags of ``user_id`` containing ``text``."""
    needle = fold(text).strip()
    if not needle:
        return Suggestions(script_titles=[], project_titles=[], tags=[])
    scripts = db.query(Script.title, Script.tags).filter(Script.user_id == user_id).all()
    project_titles = [title for (title,) in db.query(Project.title).filter(Project.user_id == user_id).all()]
    return Suggestions(
        script_titles=_matching((title for title, _ in scripts), needle, limit),
        project_titles=_matching(project_titles, needle, limit),
        tags=_matching((tag for _, tags in scripts for tag in tags or []), needle, limit),
    )
