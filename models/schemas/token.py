from marshmallow import Schema, fields, validate

from models.schemas.user import UserOutSchema


class RefreshRequestSchema(Schema):
    refresh_token = fields.String(required=True, data_key="refreshToken", validate=validate.Length(min=1))


class SessionTokensSchema(Schema):
    access_token = fields.String(data_key="accessToken")
    refresh_token = fields.String(data_key="refreshToken")
    token_type = fields.String(data_key="tokenType")
    user = fields.Nested(UserOutSchema)
    expires_at = fields.DateTime(data_key="expiresAt")
