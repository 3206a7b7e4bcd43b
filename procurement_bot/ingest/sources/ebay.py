"""eBay search results profile.

Seller names are not on the results card; records carry a placeholder seller.
"""

from procurement_bot.ingest.sources.base import DetailPageSpec, FieldRule, SourceProfile

EBAY = SourceProfile(
    name="ebay",
    profile_name="pw-profile-ebay",
    start_url="https://www.ebay.com/",
    search_url="https://www.ebay.com/sch/i.html?_nkw={term}&_sacat=0",
    container_selectors=(".s-item", '[data-testid="item-card"]'),
    fields={
        "title": (FieldRule(".s-item__title"),),
        "price": (FieldRule(".s-item__price"),),
        "link": (FieldRule(".s-item__link", attribute="href"),),
        "condition": (FieldRule(".s-item__subtitle .SECONDARY_INFO"),),
        "shipping": (FieldRule(".s-item__shipping"),),
    },
    require_field="title",
    constants={"seller": "eBay Seller", "quantity": "1"},
    defaults={"condition": "Used"},
    skip_title_patterns=(r"Shop on eBay",),
    description_fields=("title", "shipping"),
    detail_page=DetailPageSpec(
        link_selector=".s-item__link",
        price_selectors=(
            ".x-price-primary span[itemprop='price']",
            "[data-testid='x-price-primary']",
            ".x-bin-price__content .ux-textspans",
            "#prcIsum",
        ),
        description="Fallback listing page price",
    ),
    result_wait_selectors=(".s-item", ".srp-results"),
)
