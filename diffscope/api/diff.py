"""Diff, file content and revision endpoints."""

from __future__ import annotations

import mimetypes
import posixpath

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from diffscope.api.errors import raise_domain_error, raise_http_error
from diffscope.api.schemas import LineCountResponse
from diffscope.api.state import ReviewState, get_review
from diffscope.errors import DiffError, GitError
from diffscope.models import DiffResponse, GeneratedStatus, RevisionsResponse

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["diff"])


def _validate_path(path: str) -> str:
    """Reject paths that could escape the repository."""
    normalized = posixpath.normpath(path)
    if (
        not path
        or "\0" in path
        or path.startswith("/")
        or normalized == ".."
        or normalized.startswith("../")
    ):
        raise_http_error("INVALID_PATH", f"Invalid file path: {path}", 400)
    return path


def _default_ref(review: ReviewState, ref: str | None) -> str:
    return ref or review.options.target


@router.get("/diff", response_model=DiffResponse)
async def get_diff(
    target: str | None = Query(None),
    base: str | None = Query(None),
    ignore_whitespace: bool | None = Query(None, alias="ignoreWhitespace"),
    review: ReviewState = Depends(get_review),
) -> DiffResponse:
    """Parsed diff for the configured (or requested) revisions."""
    try:
        return await review.get_diff(target, base, ignore_whitespace)
    except DiffError as exc:
        logger.warning("Diff request failed", target=exc.target, base=exc.base, reason=exc.reason)
        raise_domain_error(exc)


@router.get("/generated-status/{path:path}", response_model=GeneratedStatus)
async def get_generated_status(
    path: str,
    ref: str | None = Query(None),
    review: ReviewState = Depends(get_review),
) -> GeneratedStatus:
    """Whether a file is generated, by path pattern or content marker."""
    path = _validate_path(path)
    return await review.parser.get_generated_status(path, _default_ref(review, ref))


@router.get("/blob/{path:path}")
async def get_blob(
    path: str,
    ref: str | None = Query(None),
    review: ReviewState = Depends(get_review),
) -> Response:
    """Raw content of a file at a revision."""
    path = _validate_path(path)
    ref = _default_ref(review, ref)
    try:
        content = await review.parser.get_blob_content(path, ref)
    except GitError as exc:
        raise_domain_error(exc, git_status=404)
    media_type, _ = mimetypes.guess_type(path)
    return Response(content=content, media_type=media_type or "application/octet-stream")


@router.get("/line-count/{path:path}", response_model=LineCountResponse)
async def get_line_count(
    path: str,
    ref: str | None = Query(None),
    review: ReviewState = Depends(get_review),
) -> LineCountResponse:
    """Number of lines in a file at a revision, for expanding hidden context."""
    path = _validate_path(path)
    ref = _default_ref(review, ref)
    try:
        count = await review.parser.get_line_count(path, ref)
    except GitError as exc:
        raise_domain_error(exc, git_status=404)
    return LineCountResponse(path=path, ref=ref, line_count=count)


@router.get("/revisions", response_model=RevisionsResponse)
async def get_revisions(review: ReviewState = Depends(get_review)) -> RevisionsResponse:
    """Branches and recent commits for the revision selector."""
    options = review.options
    try:
        return await review.parser.get_revision_options(options.resolved_base, options.target)
    except GitError as exc:
        raise_http_error("GIT_ERROR", f"Failed to list revisions: {exc}", 500)
