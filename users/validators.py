import re

from rest_framework import serializers

PHONE_RE = re.compile(r'^\+?[1-9]\d{1,14}$')
NAME_RE = re.compile(r"^[^\W\d_]+(?:[\s'-][^\W\d_]+)*$")
TELEGRAM_RE = re.compile(r'^@?[A-Za-z][A-Za-z0-9_]{4,31}$')


def normalize_phone(value):
    """Strip spaces, dashes and brackets people type into phone fields"""
    return re.sub(r'[\s\-()]', '', value or '')


def validate_phone(value):
    phone = normalize_phone(value)
    if not PHONE_RE.match(phone):
        raise serializers.ValidationError("Invalid phone number format")
    return phone


def validate_person_name(value):
    name = (value or '').strip()
    if len(name) < 2:
        raise serializers.ValidationError("Name must be at least 2 characters")
    if len(name) > 50:
        raise serializers.ValidationError("Name must be less than 50 characters")
    if not NAME_RE.match(name):
        raise serializers.ValidationError("Name can only contain letters and spaces")
    return name


def validate_telegram_username(value):
    username = (value or '').strip()
    if not TELEGRAM_RE.match(username):
        raise serializers.ValidationError("Invalid Telegram username")
    return username.lstrip('@')
