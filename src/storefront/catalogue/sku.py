"""SKU codes for packs.

Flavor codes take the first three letters of each word of the flavor name
("Blue Raspberry" -> "BLURAS"); kind codes the first three letters of the
recipe kind ("Traditional" -> "TRA").

    custom pack  3P-CUST-RED-BLU-FRU
    recipe       3P-TRA-REDx2-BLU
"""


def flavor_code(name: str) -> str:
    return "".join(word[:3].upper() for word in name.split())


def kind_code(kind: str) -> str:
    return kind.strip()[:3].upper()


def pack_prefix(product_type: str) -> str:
    """``3-pack`` -> ``3P``"""
    size = product_type.split("-", 1)[0]
    return f"{size}P"


def custom_pack_sku(flavor_names: list[str], product_type: str = "3-pack") -> str:
    codes = [flavor_code(name) for name in flavor_names]
    return f"{pack_prefix(product_type)}-CUST-{'-'.join(codes)}"


def recipe_sku(kind: str, components: list[tuple[str, int]], product_type: str = "3-pack") -> str:
    """Build a recipe SKU from ``(flavor_name, quantity)`` pairs."""
    parts = []
    for name, quantity in components:
        code = flavor_code(name)
        parts.append(f"{code}x{quantity}" if quantity > 1 else code)
    return f"{pack_prefix(product_type)}-{kind_code(kind)}-{'-'.join(parts)}"
