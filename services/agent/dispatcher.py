"""Resolve exactly one retrieval mode per request."""
from __future__ import annotations

from typing import Callable, Tuple

from lib.models import ContextRequest, PromptMode
from utils.errors import ModeResolutionError


def _is_page_request(request: ContextRequest) -> bool:
    return request.page_type is not None and bool(request.user_id)


def _is_workspace_request(request: ContextRequest) -> bool:
    return request.use_semantic_search or request.context_type == "workspace"


def _is_call_request(request: ContextRequest) -> bool:
    return request.context_type == "call" and bool(request.context_id)


def _is_company_request(request: ContextRequest) -> bool:
    return request.context_type == "company" and bool(request.context_id)


def _has_user(request: ContextRequest) -> bool:
    return bool(request.user_id)


# Evaluated top to bottom; the first matching rule wins.
MODE_RULES: Tuple[Tuple[PromptMode, Callable[[ContextRequest], bool]], ...] = (
    (PromptMode.PAGE_SPECIFIC, _is_page_request),
    (PromptMode.SEMANTIC_WORKSPACE, _is_workspace_request),
    (PromptMode.LEGACY_CALL, _is_call_request),
    (PromptMode.LEGACY_COMPANY, _is_company_request),
    (PromptMode.FALLBACK_WORKSPACE, _has_user),
)


def resolve_mode(request: ContextRequest) -> PromptMode:
    """
    Pick the retrieval mode for a request.

    Raises:
        ModeResolutionError: semantic workspace search was requested without
            a user id to search for.
    """
    for mode, matches in MODE_RULES:
        if matches(request):
            if mode == PromptMode.SEMANTIC_WORKSPACE and not request.user_id:
                raise ModeResolutionError(
                    mode.value, "userId is required for semantic workspace search"
                )
            return mode
    return PromptMode.NO_CONTEXT
