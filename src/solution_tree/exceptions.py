# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Solution tree exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .host import SourceDescriptor


class SolutionTreeError(Exception):
    """Base exception for solution tree errors."""

    pass


class SourceLoadError(SolutionTreeError):
    """Raised when a source descriptor fails to produce a root node.

    The underlying failure is chained as ``__cause__``.
    """

    def __init__(self, descriptor: SourceDescriptor, message: str | None = None) -> None:
        self.descriptor = descriptor
        super().__init__(
            message or f"Failed to load solution '{descriptor.primary_file}'"
        )


class InvalidIndexError(SolutionTreeError, IndexError):
    """Raised when a root is requested by an index the collection doesn't have."""

    pass
