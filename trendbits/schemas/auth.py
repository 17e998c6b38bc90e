from marshmallow import EXCLUDE, Schema, fields

from trendbits.schemas.validators import not_blank


class _RequestSchema(Schema):
    class Meta:
        unknown = EXCLUDE


class AuthRegisterSchema(_RequestSchema):
    email = fields.Str(required=True)
    password = fields.Str(required=True)
    username = fields.Str(required=False, allow_none=True)


class AuthLoginSchema(_RequestSchema):
    email = fields.Str(required=True)
    password = fields.Str(required=True)


class AuthEmailSchema(_RequestSchema):
    email = fields.Str(required=True)


class AuthPasswordResetSchema(_RequestSchema):
    token = fields.Str(required=True)
    password = fields.Str(required=True)


class AuthTokenQuerySchema(_RequestSchema):
    token = fields.Str(required=True, validate=not_blank)


class AuthUsernameSchema(_RequestSchema):
    username = fields.Str(required=True)
