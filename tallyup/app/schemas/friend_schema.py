"""
schemas/friend_schema.py — Query-string validation for friend endpoints.

Inherits from marshmallow.Schema directly, never ma.Schema, so the schema
can be loaded in unit tests without an application context.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate, validates

DEFAULT_LIMIT = 20
DEFAULT_MAX_LIMIT = 100


class SharedTransactionsQuerySchema(Schema):
    """
    GET /friends/:id/expenses?limit=&offset=

    Field rules:
      limit  : optional int, 1..max_limit, default 20
      offset : optional int, >= 0, default 0
    Unknown query parameters are ignored.
    """

    class Meta:
        unknown = EXCLUDE

    limit = fields.Int(load_default=DEFAULT_LIMIT)
    offset = fields.Int(
        load_default=0,
        validate=validate.Range(min=0, error="offset must be zero or greater."),
    )

    def __init__(self, max_limit: int = DEFAULT_MAX_LIMIT, **kwargs):
        super().__init__(**kwargs)
        self.max_limit = max_limit

    @validates("limit")
    def validate_limit(self, value: int, **kwargs) -> None:
        if not 1 <= value <= self.max_limit:
            raise ValidationError(f"limit must be between 1 and {self.max_limit}.")
