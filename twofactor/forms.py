from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField
from wtforms.validators import DataRequired, Length, Optional, ValidationError

from twofactor.totp import is_valid_backup_code, is_valid_token_format


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def token_format(form, field):
    if not is_valid_token_format(field.data):
        raise ValidationError("Enter the 6-digit code from your authenticator app.")


def token_or_backup_format(form, field):
    if not (is_valid_token_format(field.data) or is_valid_backup_code(field.data)):
        raise ValidationError("Enter a 6-digit code or a backup code.")


class LoginForm(FlaskForm):
    username = StringField("Username", filters=[_strip], validators=[DataRequired(), Length(max=80)])
    password = PasswordField("Password", validators=[DataRequired()])


class TokenForm(FlaskForm):
    code = StringField("Verification Code", filters=[_strip], validators=[DataRequired(), token_format])


class TokenOrBackupForm(FlaskForm):
    code = StringField("Verification or Backup Code", filters=[_strip], validators=[DataRequired(), token_or_backup_format])


class SetupForm(FlaskForm):
    """Setup needs no code for a first enrollment, only to replace an active one."""
    code = StringField("Current Code", filters=[_strip], validators=[Optional(), token_or_backup_format])
