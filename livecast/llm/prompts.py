from catalog.store import Catalog
from llm.number_words import price_to_words

LANGUAGES = {"en": "English", "id": "Indonesian"}

STYLE_DIRECTIVES = {
    "en": [
        "Reply in an energetic style",
        "Reply in a casual, relaxed style",
        "Reply briefly and in a friendly way",
        "Explain right away, with enthusiasm",
    ],
    "id": [
        "Balas dengan gaya energik",
        "Balas dengan gaya santai",
        "Balas singkat dan friendly",
        "Langsung jelaskan dengan antusias",
    ],
}

APOLOGY = {
    "en": "Hi {name}! Sorry, could you ask that one more time?",
    "id": "Halo kak {name}! Maaf ya, coba tanya lagi ya kak~",
}

GIFT_THANKS = {
    "en": "Wow, thank you so much {name} for the {gift}! Love you!",
    "id": "Wah terima kasih banyak kak {name} untuk {gift} nya! Love you kak!",
}

FOLLOW_THANKS = {
    "en": "Thanks for the follow, {name}! Welcome to the live!",
    "id": "Terima kasih kak {name} sudah follow! Selamat bergabung di live kita ya kak!",
}


def localized(table: dict[str, str], locale: str, **kwargs) -> str:
    return table.get(locale, table["en"]).format(**kwargs)


def build_product_list(catalog: Catalog, locale: str = "en", currency: str = "") -> str:
    """Numbered product list with prices spelled out in words."""
    lines = []
    for i, product in enumerate(catalog.products, start=1):
        price = price_to_words(product.price, locale, currency)
        description = product.description or "featured product"
        lines.append(f"{i}. {product.name} - {price} ({description}, stock: {product.stock})")
    return "\n".join(lines)


def build_system_prompt(catalog: Catalog, locale: str = "en", currency: str = "") -> str:
    """Build the system prompt for the live-stream sales assistant."""
    language = LANGUAGES.get(locale, "English")
    product_list = build_product_list(catalog, locale, currency) or "No products yet"
    promo_list = "\n".join(
        f'- Code "{p.code}": {p.description}' for p in catalog.promotions
    ) or "No promotions"

    return f"""You are the live-stream sales host for "{catalog.store_name}".

Rules:
- Always respond in {language}
- Address the viewer by name at the start of the reply
- No emoji
- Every reply MUST be worded differently from your previous replies
- Keep it to 2-3 short sentences

Never:
- Never ask the viewer a question back
- Never ask for clarification or what they want to know
- If the viewer asks about a product, price, or stock, answer DIRECTLY

When a viewer asks about a product, always give:
1. The product name
2. The price in words exactly as written in the list below (never digits)
3. A short description or selling point
4. An invitation to order now

=== PRODUCTS ===
{product_list}

=== PROMOTIONS ===
{promo_list}"""


def build_user_prompt(
    display_name: str,
    message: str,
    recent_replies: list[str],
    style: str,
) -> str:
    """The current viewer turn, with anti-repetition and style hints."""
    hint = ""
    if recent_replies:
        quoted = '", "'.join(recent_replies[-3:])
        hint = f'\n\n[IMPORTANT: Do not reuse replies like: "{quoted}" - say it DIFFERENTLY!]'
    return f'{display_name} says: "{message}"{hint}\n\n[Style: {style}]'
