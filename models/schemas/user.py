from marshmallow import Schema, fields, validate, validates_schema, ValidationError


class UserRegisterSchema(Schema):
    name = fields.String(required=True, validate=validate.Length(min=1, max=100))
    email = fields.Email(required=True, validate=validate.Length(max=150))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=6))
    password_confirm = fields.String(required=True, load_only=True, data_key="passwordConfirm")

    @validates_schema
    def validate_passwords_match(self, data, **kwargs):
        if data.get("password") != data.get("password_confirm"):
            raise ValidationError("Passwords do not match.", field_name="passwordConfirm")


class UserLoginSchema(Schema):
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1))


class UserOutSchema(Schema):
    id = fields.Integer()
    name = fields.String()
    email = fields.String()
    is_premium = fields.Boolean(data_key="isPremium")
    created_at = fields.DateTime(data_key="createdAt")
    last_login_at = fields.DateTime(allow_none=True, data_key="lastLoginAt")


class PremiumStatusSchema(Schema):
    is_premium = fields.Boolean(data_key="isPremium")
    premium_expires_at = fields.Method("get_premium_expires_at", data_key="premiumExpiresAt")

    def get_premium_expires_at(self, obj):
        # premium does not expire yet
        return None
