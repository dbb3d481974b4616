# /tgauth/config/strings.py

# All user-facing bot texts live here so they can be reworded or localized
# without touching the handlers.

# Linking flow
START_WITHOUT_CODE = "Assalomu alaykum! Iltimos, loyiha kodi bilan /start buyrug‘ini yuboring."
PROJECT_CODE_NOT_FOUND = "Loyiha kodi topilmadi yoki faol emas."
ASK_PHONE = "Assalomu alaykum! Telefon raqamingizni yuboring."
SHARE_PHONE_BUTTON = "Telefon raqamni yuborish"
PHONE_MISSING = "Telefon raqamni topa olmadim. Qayta yuboring."
FOREIGN_CONTACT = "Iltimos, o‘zingizning telefon raqamingizni yuboring."
SESSION_NOT_FOUND = "Sessiya topilmadi. Iltimos, /start <loyiha_kodi> buyrug‘ini yuboring."
PROJECT_INACTIVE = "Loyiha faol emas."
PHONE_LINKED = "Raqamingiz ulandi: {phone}"
PHONE_LINK_CONFLICT = "Raqamni ulab bo‘lmadi. Qayta yuboring."
GENERIC_PROMPT = "Iltimos, /start buyrug‘ini bosing yoki telefon raqamingizni yuboring."
ERROR_GENERAL = "Xatolik yuz berdi. Keyinroq urinib ko‘ring."

# Codes
VERIFICATION_CODE = "Tasdiqlash kodi: {code}"
VERIFICATION_CODE_WITH_TTL = "Tasdiqlash kodi: {code}\nU {ttl} soniya ichida amal qiladi."

# Admin conversation
NOT_ALLOWED = "Ruxsat yo‘q."
ASK_PROJECT_NAME = "Yangi loyiha nomini yuboring."
NAME_AS_PLAIN_TEXT = "Loyiha nomini oddiy matn sifatida yuboring."
CONFIRM_PROJECT_NAME = "Loyiha nomi: {name}\nTasdiqlaysizmi?"
CONFIRM_BUTTON = "Tasdiqlash"
CANCEL_BUTTON = "Bekor qilish"
SESSION_EXPIRED = "Sessiya tugagan."
PROJECT_CREATED_SHORT = "Yaratildi."
PROJECT_CREATED = "Loyiha yaratildi.\nName: {name}\nID: {id}\nAPI-KEY: {key}\nCode: {code}"
CANCELLED_SHORT = "Bekor qilindi."
CREATION_CANCELLED = "Yaratish bekor qilindi."
