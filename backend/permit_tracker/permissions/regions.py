# Overview: Seed data for the region registry.
# Each region is defined as: (code, name_en, name_ar)

DEFAULT_REGION = "headquarters"

REGION_DEFINITIONS = [
    ("headquarters", "Headquarters", "المقر الرئيسي"),
    ("riyadh", "Riyadh", "الرياض"),
    ("qassim", "Al-Qassim", "القصيم"),
    ("hail", "Hail", "حائل"),
    ("dammam", "Dammam", "الدمام"),
    ("ahsa", "Al-Ahsa", "الأحساء"),
    ("jubail", "Jubail", "الجبيل"),
    ("jouf", "Al-Jouf", "الجوف"),
    ("northern_borders", "Northern Borders", "الحدود الشمالية"),
    ("jeddah", "Jeddah", "جدة"),
    ("makkah", "Makkah", "مكة"),
    ("medina", "Medina", "المدينة"),
    ("tabuk", "Tabuk", "تبوك"),
    ("yanbu", "Yanbu", "ينبع"),
    ("asir", "Asir", "عسير"),
    ("taif", "Taif", "الطائف"),
    ("baha", "Al-Baha", "الباحة"),
    ("jizan", "Jizan", "جازان"),
    ("najran", "Najran", "نجران"),
]

REGION_CODES = tuple(code for code, _, _ in REGION_DEFINITIONS)
