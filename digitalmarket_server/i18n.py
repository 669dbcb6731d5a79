# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""User-facing messages in Arabic and English."""

from fastapi import Request

from digitalmarket_server.config import settings

SUPPORTED_LANGUAGES = ("ar", "en")

MESSAGES: dict[str, dict[str, str]] = {
    # Password reset
    "reset_code_sent": {
        "ar": "تم إرسال رمز إعادة تعيين كلمة المرور إلى بريدك الإلكتروني",
        "en": "A password reset code has been sent to your email.",
    },
    "password_reset_done": {
        "ar": "تم إعادة تعيين كلمة المرور بنجاح. يمكنك الآن تسجيل الدخول.",
        "en": "Your password has been reset. You can now sign in.",
    },
    "missing_fields": {
        "ar": "يرجى ملء جميع الحقول المطلوبة",
        "en": "Please fill in all required fields.",
    },
    "invalid_request": {
        "ar": "الطلب غير صالح. يرجى التحقق من البيانات المدخلة",
        "en": "The request is not valid. Please check the submitted fields.",
    },
    "email_required": {
        "ar": "يرجى إدخال البريد الإلكتروني",
        "en": "Please enter your email address.",
    },
    "invalid_email": {
        "ar": "البريد الإلكتروني غير صالح",
        "en": "The email address is not valid.",
    },
    "password_mismatch": {
        "ar": "كلمتي المرور غير متطابقتين",
        "en": "The passwords do not match.",
    },
    "password_too_short": {
        "ar": "كلمة المرور يجب أن تكون {min_length} أحرف على الأقل",
        "en": "The password must be at least {min_length} characters.",
    },
    "invalid_or_expired_code": {
        "ar": "الرمز غير صالح أو منتهي الصلاحية",
        "en": "The code is invalid or has expired.",
    },
    "credential_update_failed": {
        "ar": "فشل في إعادة تعيين كلمة المرور",
        "en": "The password could not be reset. Please try again.",
    },
    "email_not_configured": {
        "ar": "خدمة البريد الإلكتروني غير مهيأة",
        "en": "Email delivery is not configured.",
    },
    "storage_unavailable": {
        "ar": "حدث خطأ في الخادم، يرجى المحاولة لاحقًا",
        "en": "A server error occurred. Please try again later.",
    },
    "delivery_failed": {
        "ar": "فشل في إرسال رمز إعادة التعيين",
        "en": "The reset code could not be sent.",
    },
    # Email subjects
    "subject_reset_code": {
        "ar": "إعادة تعيين كلمة المرور - {app_name}",
        "en": "Reset your password - {app_name}",
    },
    "subject_welcome": {
        "ar": "مرحبًا بك في {app_name}",
        "en": "Welcome to {app_name}",
    },
    "subject_new_user": {
        "ar": "مستخدم جديد - {app_name}",
        "en": "New user - {app_name}",
    },
    # Accounts
    "invalid_credentials": {
        "ar": "البريد الإلكتروني أو كلمة المرور غير صحيحة",
        "en": "Invalid email or password.",
    },
    "email_taken": {
        "ar": "البريد الإلكتروني مسجل بالفعل",
        "en": "This email is already registered.",
    },
    "username_taken": {
        "ar": "اسم المستخدم مستخدم بالفعل",
        "en": "This username is already taken.",
    },
    "username_required": {
        "ar": "يرجى إدخال اسم المستخدم",
        "en": "Please enter a username.",
    },
    "too_many_requests": {
        "ar": "طلبات كثيرة جدًا. يرجى المحاولة لاحقًا.",
        "en": "Too many requests. Please try again later.",
    },
}


def translate(key: str, lang: str | None = None, **params) -> str:
    """Look up a message; unknown languages fall back to the default, unknown keys to the key."""
    entry = MESSAGES.get(key)
    if entry is None:
        return key
    text = entry.get(lang or "") or entry.get(settings.default_language) or entry["en"]
    return text.format(**params) if params else text


def parse_accept_language(header: str | None) -> str:
    """Return the first supported language in an Accept-Language header, by q-value."""
    if not header:
        return settings.default_language
    candidates: list[tuple[float, int, str]] = []
    for index, part in enumerate(header.split(",")):
        piece = part.strip()
        if not piece:
            continue
        tag, _, params = piece.partition(";")
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        primary = tag.strip().lower().split("-")[0]
        if primary in SUPPORTED_LANGUAGES and quality > 0:
            candidates.append((-quality, index, primary))
    if not candidates:
        return settings.default_language
    return min(candidates)[2]


async def get_language(request: Request) -> str:
    """FastAPI dependency: language for user-facing messages."""
    return parse_accept_language(request.headers.get("accept-language"))
