"""
Fallback catalogue of the main Tunisian destinations.

Served only when MyGo is unreachable and no cached city list exists. The ids
are placeholders, not MyGo city ids, so these cities cannot be searched.
"""

from mygo_mcp.models.search import City

DEFAULT_TUNISIAN_CITIES: tuple[City, ...] = (
    City(id=1, name="Tunis", region="Tunis"),
    City(id=2, name="Sousse", region="Sousse"),
    City(id=3, name="Hammamet", region="Nabeul"),
    City(id=4, name="Djerba", region="Médenine"),
    City(id=5, name="Monastir", region="Monastir"),
    City(id=6, name="Sfax", region="Sfax"),
    City(id=7, name="Tozeur", region="Tozeur"),
    City(id=8, name="Tabarka", region="Jendouba"),
    City(id=9, name="Nabeul", region="Nabeul"),
    City(id=10, name="Mahdia", region="Mahdia"),
    City(id=11, name="Kairouan", region="Kairouan"),
    City(id=12, name="Bizerte", region="Bizerte"),
    City(id=13, name="Gammarth", region="Tunis"),
)


def default_cities() -> list[dict]:
    """Fresh JSON-ready copies of the fallback cities."""
    return [city.model_dump() for city in DEFAULT_TUNISIAN_CITIES]
