"""
Distribution Tables — static shape of a simulated restaurant day.

Weights within any one distribution sum to 100. Consumers that split a count
across buckets assign the rounding remainder to the last bucket in
declaration order.
"""

from datetime import date
from enum import Enum
from typing import NamedTuple


class MealPeriod(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    HAPPY_HOUR = "happy_hour"
    DINNER = "dinner"
    LATE_NIGHT = "late_night"


class DiningOption(str, Enum):
    DINE_IN = "dine_in"
    TAKEOUT = "takeout"
    DELIVERY = "delivery"

    @property
    def provider_code(self) -> str:
        return _PROVIDER_CODES[self]


_PROVIDER_CODES = {
    DiningOption.DINE_IN: "HERE",
    DiningOption.TAKEOUT: "TO_GO",
    DiningOption.DELIVERY: "DELIVERY",
}


class PeriodProfile(NamedTuple):
    hours: tuple[int, int]  # inclusive start/end hour
    weight: int
    item_count: tuple[int, int]
    party_size: tuple[int, int]


class Band(NamedTuple):
    low: int
    high: int


# Declaration order matters: late_night absorbs any rounding remainder.
MEAL_PERIODS: dict[MealPeriod, PeriodProfile] = {
    MealPeriod.BREAKFAST: PeriodProfile(hours=(7, 10), weight=15, item_count=(2, 4), party_size=(1, 2)),
    MealPeriod.LUNCH: PeriodProfile(hours=(11, 14), weight=30, item_count=(2, 5), party_size=(1, 4)),
    MealPeriod.HAPPY_HOUR: PeriodProfile(hours=(15, 17), weight=10, item_count=(2, 4), party_size=(2, 4)),
    MealPeriod.DINNER: PeriodProfile(hours=(17, 21), weight=35, item_count=(3, 6), party_size=(2, 6)),
    MealPeriod.LATE_NIGHT: PeriodProfile(hours=(21, 23), weight=10, item_count=(2, 4), party_size=(1, 3)),
}

DINING_BY_PERIOD: dict[MealPeriod, dict[DiningOption, int]] = {
    MealPeriod.BREAKFAST: {DiningOption.DINE_IN: 40, DiningOption.TAKEOUT: 50, DiningOption.DELIVERY: 10},
    MealPeriod.LUNCH: {DiningOption.DINE_IN: 35, DiningOption.TAKEOUT: 45, DiningOption.DELIVERY: 20},
    MealPeriod.HAPPY_HOUR: {DiningOption.DINE_IN: 80, DiningOption.TAKEOUT: 15, DiningOption.DELIVERY: 5},
    MealPeriod.DINNER: {DiningOption.DINE_IN: 70, DiningOption.TAKEOUT: 15, DiningOption.DELIVERY: 15},
    MealPeriod.LATE_NIGHT: {DiningOption.DINE_IN: 50, DiningOption.TAKEOUT: 30, DiningOption.DELIVERY: 20},
}

CATEGORY_PREFERENCES: dict[MealPeriod, tuple[str, ...]] = {
    MealPeriod.BREAKFAST: ("Drinks", "Sides"),
    MealPeriod.LUNCH: ("Appetizers", "Entrees", "Sides", "Drinks"),
    MealPeriod.HAPPY_HOUR: ("Appetizers", "Alcoholic Beverages", "Drinks"),
    MealPeriod.DINNER: ("Appetizers", "Entrees", "Sides", "Desserts", "Alcoholic Beverages", "Drinks"),
    MealPeriod.LATE_NIGHT: ("Appetizers", "Entrees", "Alcoholic Beverages", "Desserts"),
}

# Tip percentage bands, inclusive
TIP_BANDS: dict[DiningOption, Band] = {
    DiningOption.DINE_IN: Band(15, 25),
    DiningOption.TAKEOUT: Band(0, 15),
    DiningOption.DELIVERY: Band(10, 20),
}
LARGE_PARTY_SIZE = 6
AUTO_GRATUITY_PERCENT = 18
TAKEOUT_NO_TIP_CHANCE = 0.30

# Orders per day, keyed by date.weekday() (Monday == 0)
WEEKDAY_VOLUME = Band(40, 60)
VOLUME_BY_WEEKDAY: dict[int, Band] = {
    4: Band(70, 100),  # Friday
    5: Band(80, 120),  # Saturday
    6: Band(50, 80),  # Sunday
}

# Order synthesis behaviour
CUSTOMER_ATTACH_CHANCE = 0.60
LINE_ITEM_NOTE_CHANCE = 0.15
MULTI_QUANTITY_CHANCE = 0.30  # only for parties larger than two
DISCOUNT_CHANCE_WITH_CUSTOMER = 0.20
DISCOUNT_CHANCE_ANONYMOUS = 0.10
HAPPY_HOUR_DISCOUNT_PREFERENCE = 0.50
CASH_PREFERENCE_THRESHOLD = 2000  # cents
CASH_PREFERENCE_CHANCE = 0.40

# Payment splitting
SPLIT_CHANCE_DINE_IN_GROUP = 0.25
SPLIT_CHANCE_DEFAULT = 0.05
MAX_SPLITS = 4
EVEN_SPLIT_CHANCE = 0.70
SPLIT_CUT_RANGE = Band(10, 90)
MIN_SPLIT_PERCENT = 5

# Gift cards: only when the merchant has a gift tender and a card with balance
GIFT_CARD_PAYMENT_CHANCE = 0.10

# Refunds
FULL_REFUND_CHANCE = 0.60
PARTIAL_REFUND_PERCENT = Band(25, 75)
REFUND_REASONS = ("customer_request", "quality_issue", "wrong_order", "duplicate_charge")

LINE_ITEM_NOTES = (
    "No onions",
    "Extra spicy",
    "Gluten-free",
    "Allergic to nuts",
    "Light ice",
    "No salt",
    "Well done",
    "Medium rare",
    "Extra sauce on side",
    "Dressing on side",
    "No cheese",
    "Add bacon",
    "Birthday celebration",
    "Anniversary dinner",
    "VIP customer",
    "Rush order",
    "Separate checks",
)


def volume_band_for(day: date) -> Band:
    return VOLUME_BY_WEEKDAY.get(day.weekday(), WEEKDAY_VOLUME)
