# -*- coding: utf-8 -*-
# detailers/schemas/auth.py
from marshmallow import EXCLUDE, Schema, fields, post_load


class LoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)

    @post_load
    def normalize(self, data, **kwargs):
        data["email"] = data["email"].strip().lower()
        return data
