from marshmallow import EXCLUDE, Schema, fields, validate

from trendbits.schemas.validators import not_blank, not_empty_list


class _RequestSchema(Schema):
    class Meta:
        unknown = EXCLUDE


class PromptSchema(_RequestSchema):
    prompt = fields.Str(required=True, validate=[not_blank, validate.Length(max=500)])


class SaveTrendSchema(_RequestSchema):
    search_term = fields.Str(required=True, validate=[not_blank, validate.Length(max=500)])
    headline = fields.Str(required=True, validate=not_blank)
    summary = fields.Str(required=True, validate=not_blank)
    key_points = fields.List(
        fields.Str(validate=not_blank), required=True, validate=not_empty_list
    )
    call_to_action = fields.Str(required=True, validate=not_blank)
    # Entries are filtered against the reference allow-list before storage.
    article_references = fields.List(fields.Raw(), load_default=list)


class HistoryQueryArgsSchema(_RequestSchema):
    id = fields.Str(required=False)
    q = fields.Str(required=False)
    page = fields.Int(load_default=1, validate=validate.Range(min=1))
    limit = fields.Int(load_default=10, validate=validate.Range(min=1, max=50))
