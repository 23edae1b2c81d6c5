"""Emoji and color tags for ingredients, derived from the name alone."""

DEFAULT_EMOJI = "🍽️"

_EMOJI_BY_KEYWORD: dict[str, str] = {
    # Proteins
    "chicken": "🍗",
    "beef": "🥩",
    "pork": "🥓",
    "fish": "🐟",
    "salmon": "🍣",
    "tuna": "🐟",
    "shrimp": "🦐",
    "lobster": "🦞",
    "crab": "🦀",
    "egg": "🥚",
    "eggs": "🥚",
    "turkey": "🦃",
    "lamb": "🍖",
    "duck": "🦆",
    "bacon": "🥓",
    "ham": "🍖",
    "sausage": "🌭",
    "steak": "🥩",
    # Dairy
    "milk": "🥛",
    "cheese": "🧀",
    "yogurt": "🥛",
    "butter": "🧈",
    "cream": "🥛",
    "ice": "🧊",
    # Grains
    "bread": "🍞",
    "rice": "🍚",
    "pasta": "🍝",
    "noodles": "🍜",
    "wheat": "🌾",
    "oats": "🌾",
    "cereal": "🥣",
    "flour": "🌾",
    "quinoa": "🌾",
    "corn": "🌽",
    "tortilla": "🫓",
    # Fruits
    "apple": "🍎",
    "banana": "🍌",
    "orange": "🍊",
    "lemon": "🍋",
    "lime": "🍋",
    "grape": "🍇",
    "strawberry": "🍓",
    "blueberry": "🫐",
    "raspberry": "🍓",
    "cherry": "🍒",
    "peach": "🍑",
    "pear": "🍐",
    "watermelon": "🍉",
    "melon": "🍈",
    "pineapple": "🍍",
    "mango": "🥭",
    "coconut": "🥥",
    "kiwi": "🥝",
    "avocado": "🥑",
    "tomato": "🍅",
    # Vegetables
    "carrot": "🥕",
    "broccoli": "🥦",
    "lettuce": "🥬",
    "spinach": "🥬",
    "cabbage": "🥬",
    "cucumber": "🥒",
    "pepper": "🌶️",
    "onion": "🧅",
    "garlic": "🧄",
    "potato": "🥔",
    "eggplant": "🍆",
    "mushroom": "🍄",
    "peas": "🫛",
    "beans": "🫘",
    "celery": "🥬",
    "zucchini": "🥒",
    "squash": "🎃",
    "pumpkin": "🎃",
    "asparagus": "🥦",
    # Nuts
    "peanut": "🥜",
    "almond": "🥜",
    "walnut": "🥜",
    "cashew": "🥜",
    "pistachio": "🥜",
    # Condiments
    "salt": "🧂",
    "sugar": "🍬",
    "honey": "🍯",
    "oil": "🫒",
    "olive": "🫒",
    "vinegar": "🍶",
    "sauce": "🥫",
    "ketchup": "🥫",
    "mustard": "🥫",
    "mayo": "🥫",
    "soy": "🥫",
    # Drinks
    "coffee": "☕",
    "tea": "🍵",
    "juice": "🧃",
    "water": "💧",
    "wine": "🍷",
    "beer": "🍺",
    # Baked goods
    "cake": "🍰",
    "cookie": "🍪",
    "pie": "🥧",
    "donut": "🍩",
    "croissant": "🥐",
    # Dishes
    "chocolate": "🍫",
    "candy": "🍬",
    "pizza": "🍕",
    "burger": "🍔",
    "sandwich": "🥪",
    "taco": "🌮",
    "burrito": "🌯",
    "sushi": "🍣",
    "ramen": "🍜",
    "soup": "🍲",
    "salad": "🥗",
    "fries": "🍟",
    "hotdog": "🌭",
    "popcorn": "🍿",
}

_PALETTE = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEAA7",
    "#DDA0DD",
    "#98D8C8",
    "#F7DC6F",
    "#BB8FCE",
    "#85C1E9",
    "#F8B500",
    "#FF7F50",
    "#87CEEB",
    "#98FB98",
    "#DDA0DD",
)


def ingredient_emoji(name: str) -> str:
    """Pick an emoji for an ingredient by exact, then substring, match."""
    key = name.lower().strip()
    if not key:
        return DEFAULT_EMOJI
    if key in _EMOJI_BY_KEYWORD:
        return _EMOJI_BY_KEYWORD[key]
    for keyword, emoji in _EMOJI_BY_KEYWORD.items():
        if keyword in key or key in keyword:
            return emoji
    return DEFAULT_EMOJI


def ingredient_color(name: str) -> str:
    """Pick a stable palette color from a 32-bit rolling hash of the name."""
    value = 0
    data = name.encode("utf-16-le")
    for index in range(0, len(data), 2):
        code_unit = data[index] | (data[index + 1] << 8)
        value = (code_unit + (value << 5) - value) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _PALETTE[abs(value) % len(_PALETTE)]
