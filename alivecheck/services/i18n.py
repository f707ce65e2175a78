TRANSLATIONS = {
    "en": {
        "location_invalid_message": "Unable to determine the current location.",
        "geocode_invalid_message": "Location: {0:.6f}, {1:.6f} (accuracy {2:.1f} m). Address unavailable.",
        "geocode_valid_message": "Location: {0:.6f}, {1:.6f} (accuracy {2:.1f} m). Address: {3}",
    },
    "es": {
        "location_invalid_message": "No se pudo determinar la ubicación actual.",
        "geocode_invalid_message": "Ubicación: {0:.6f}, {1:.6f} (precisión {2:.1f} m). Dirección no disponible.",
        "geocode_valid_message": "Ubicación: {0:.6f}, {1:.6f} (precisión {2:.1f} m). Dirección: {3}",
    },
    "ru": {
        "location_invalid_message": "Не удалось определить текущее местоположение.",
        "geocode_invalid_message": "Местоположение: {0:.6f}, {1:.6f} (точность {2:.1f} м). Адрес недоступен.",
        "geocode_valid_message": "Местоположение: {0:.6f}, {1:.6f} (точность {2:.1f} м). Адрес: {3}",
    },
    "ko": {
        "location_invalid_message": "현재 위치를 확인할 수 없습니다.",
        "geocode_invalid_message": "위치: {0:.6f}, {1:.6f} (정확도 {2:.1f} m). 주소를 확인할 수 없습니다.",
        "geocode_valid_message": "위치: {0:.6f}, {1:.6f} (정확도 {2:.1f} m). 주소: {3}",
    },
}

def get_translations(lang: str = "en") -> dict:
    # Basic fallback
    if lang not in TRANSLATIONS:
        lang = "en"
    return TRANSLATIONS[lang]


class MessageTemplates:
    """Formats the three location messages for one language."""

    def __init__(self, lang: str = "en"):
        self.strings = get_translations(lang)

    def location_invalid(self) -> str:
        return self.strings["location_invalid_message"]

    def raw_location(self, latitude: float, longitude: float, accuracy: float) -> str:
        return self.strings["geocode_invalid_message"].format(latitude, longitude, accuracy)

    def addressed_location(self, latitude: float, longitude: float, accuracy: float, address: str) -> str:
        return self.strings["geocode_valid_message"].format(latitude, longitude, accuracy, address)
