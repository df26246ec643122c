import enum


# --- Enums shared by the estimator and the API layer ---

class ActivityCategory(str, enum.Enum):
    TRANSPORTATION = "transportation"
    FOOD = "food"
    ENERGY = "energy"
    SHOPPING = "shopping"
    OTHER = "other"


class EstimateSource(str, enum.Enum):
    MODEL = "model"      # Gemini produced the estimate
    RULE = "rule"        # a pattern rule or the shopping heuristic matched
    DEFAULT = "default"  # nothing matched, generic estimate


# --- Rule subtypes ---
# Declaration order is the matching priority inside each category.

class TransportMode(str, enum.Enum):
    CAR = "car"
    BUS = "bus"
    TRAIN = "train"
    PLANE = "plane"
    BIKE = "bike"
    WALK = "walk"


class FoodType(str, enum.Enum):
    MEAL = "meal"
    BEEF = "beef"
    CHICKEN = "chicken"
    PORK = "pork"
    FISH = "fish"
    VEGETABLES = "vegetables"
    FRUITS = "fruits"


class EnergyUse(str, enum.Enum):
    ELECTRICITY = "electricity"
    HEATING = "heating"
    AIR_CONDITIONING = "air_conditioning"


VALID_CATEGORIES = tuple(c.value for c in ActivityCategory)
