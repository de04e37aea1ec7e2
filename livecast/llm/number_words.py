"""Spell out prices in words so TTS reads them naturally.

Digits like "150.000" are read inconsistently by speech models, so prices
in the prompt are rendered as words in the store's locale.
"""

EN_ONES = [
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
    "seventeen", "eighteen", "nineteen",
]
EN_TENS = ["", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety"]
EN_SCALES = [(1_000_000_000, "billion"), (1_000_000, "million"), (1_000, "thousand")]

ID_ONES = ["nol", "satu", "dua", "tiga", "empat", "lima", "enam", "tujuh", "delapan", "sembilan"]
ID_SCALES = [(1_000_000_000, "miliar"), (1_000_000, "juta"), (1_000, "ribu")]

FREE = {"en": "free", "id": "gratis"}


def _en_below_thousand(n: int) -> str:
    parts = []
    hundreds, rest = divmod(n, 100)
    if hundreds:
        parts.append(f"{EN_ONES[hundreds]} hundred")
    if rest >= 20:
        tens, ones = divmod(rest, 10)
        parts.append(EN_TENS[tens] + (f"-{EN_ONES[ones]}" if ones else ""))
    elif rest:
        parts.append(EN_ONES[rest])
    return " ".join(parts)


def _id_below_thousand(n: int) -> str:
    parts = []
    hundreds, rest = divmod(n, 100)
    if hundreds == 1:
        parts.append("seratus")
    elif hundreds:
        parts.append(f"{ID_ONES[hundreds]} ratus")

    if rest == 10:
        parts.append("sepuluh")
    elif rest == 11:
        parts.append("sebelas")
    elif 12 <= rest <= 19:
        parts.append(f"{ID_ONES[rest - 10]} belas")
    elif rest >= 20:
        tens, ones = divmod(rest, 10)
        parts.append(f"{ID_ONES[tens]} puluh" + (f" {ID_ONES[ones]}" if ones else ""))
    elif rest:
        parts.append(ID_ONES[rest])
    return " ".join(parts)


def number_to_words(n: int, locale: str = "en") -> str:
    """Spell out a non-negative integer (up to the billions)."""
    if n < 0:
        raise ValueError("Negative numbers are not supported")

    if locale == "id":
        if n == 0:
            return ID_ONES[0]
        below, scales = _id_below_thousand, ID_SCALES
    else:
        if n == 0:
            return EN_ONES[0]
        below, scales = _en_below_thousand, EN_SCALES

    parts = []
    for value, name in scales:
        count, n = divmod(n, value)
        if not count:
            continue
        if locale == "id" and value == 1_000 and count == 1:
            parts.append("seribu")
        else:
            parts.append(f"{number_to_words(count, locale)} {name}")
    if n:
        parts.append(below(n))
    return " ".join(parts)


def price_to_words(price, locale: str = "en", currency: str = "") -> str:
    """Render a price as words, e.g. 150000 -> "one hundred fifty thousand rupiah".

    Zero, missing, or unparseable prices are "free".
    """
    try:
        amount = int(round(float(price)))
    except (TypeError, ValueError):
        amount = 0
    if amount <= 0:
        return FREE.get(locale, FREE["en"])

    words = number_to_words(amount, locale)
    return f"{words} {currency}" if currency else words
