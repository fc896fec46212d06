"""Helpers shared by the use-case services."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from contentflow.errors import Reason, ValidationFailedError
from contentflow.validators.schema import Language
from contentflow.workflow.scope import Scope

M = TypeVar("M", bound=BaseModel)

logger = logging.getLogger(__name__)


def parse_input(model_cls: Type[M], data: Union[M, Dict[str, Any]]) -> M:
    """Validate direct input, converting pydantic errors to ValidationFailedError."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        logger.info(f"Rejected {model_cls.__name__} input: {e.error_count()} errors")
        raise ValidationFailedError.from_pydantic(e) from e


@contextmanager
def converting_validation_errors():
    """Surface model invariant violations raised by store writes as validation errors."""
    try:
        yield
    except ValidationError as e:
        raise ValidationFailedError.from_pydantic(e) from e


def changes_from(update: BaseModel) -> Dict[str, Any]:
    """Fields explicitly provided in a partial update (None means "leave as is")."""
    return {
        name: getattr(update, name)
        for name in update.model_fields_set
        if getattr(update, name) is not None
    }


def resolve_language(scope: Scope, requested: Optional[Language]) -> Language:
    """
    Language a new entity is written to.

    Scoped callers write to their own partition; an explicit different
    language is refused. Unrestricted callers must name the language.

    Raises:
        ValidationFailedError: invalid_input
    """
    if scope.language is not None:
        if requested is not None and requested != scope.language:
            raise ValidationFailedError(
                Reason.INVALID_INPUT,
                f"Language {requested.value} is outside the caller's scope",
                details=[{"loc": ["language"], "msg": "language outside caller scope"}],
            )
        return scope.language
    if requested is None:
        raise ValidationFailedError(
            Reason.INVALID_INPUT,
            "language is required",
            details=[{"loc": ["language"], "msg": "Field required"}],
        )
    return requested
