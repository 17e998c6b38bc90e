"""Schemas for JSON the generative model returns.

Unknown keys are excluded on load, so a successful load is also the projection
onto the known fields.
"""

from marshmallow import EXCLUDE, Schema, fields, validate

from trendbits.schemas.validators import not_blank, not_empty_list

HOT_TOPIC_ICONS = ("Brain", "TrendingUp", "Zap", "Cpu", "Globe", "Rocket")


class SummarySchema(Schema):
    class Meta:
        unknown = EXCLUDE

    headline = fields.Str(required=True, validate=not_blank)
    summary = fields.Str(required=True, validate=not_blank)
    key_points = fields.List(
        fields.Str(validate=not_blank), required=True, validate=not_empty_list
    )
    call_to_action = fields.Str(required=True, validate=not_blank)


class ReferenceSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    title = fields.Str(load_default="")
    url = fields.Str(required=True, validate=not_blank)
    source = fields.Str(load_default="")
    date = fields.Str(load_default="")


class HotTopicSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    icon = fields.Str(required=True, validate=validate.OneOf(HOT_TOPIC_ICONS))
    title = fields.Str(required=True, validate=[not_blank, validate.Length(max=100)])
    description = fields.Str(required=True, validate=[not_blank, validate.Length(max=200)])
    query = fields.Str(required=True, validate=not_blank)
