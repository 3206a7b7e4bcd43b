"""Amazon search results profile."""

from procurement_bot.ingest.sources.base import DetailPageSpec, FieldRule, SourceProfile

AMAZON = SourceProfile(
    name="amazon",
    profile_name="pw-profile-amazon-search",
    start_url="https://www.amazon.{region}",
    search_url="https://www.amazon.{region}/s?k={term}",
    container_selectors=(
        '[data-component-type="s-search-result"]',
        "div.s-result-item",
        ".puis-card-container",
    ),
    fields={
        "title": (FieldRule("h2 a span"), FieldRule("h2 span")),
        "price": (
            FieldRule(".a-price .a-offscreen"),
            FieldRule("span.a-price-whole", fraction_selector="span.a-price-fraction"),
            FieldRule('[data-a-color="price"] .a-offscreen'),
            FieldRule(".a-color-price"),
        ),
        "link": (FieldRule("h2 a", attribute="href"), FieldRule("a.a-link-normal", attribute="href")),
    },
    constants={"seller": "Amazon", "condition": "NEW"},
    description_fields=("title",),
    detail_page=DetailPageSpec(
        link_selector="h2 a",
        price_selectors=(
            "#corePriceDisplay_desktop_feature_div .a-offscreen",
            ".a-price .a-offscreen",
        ),
    ),
    result_wait_selectors=(
        '[data-component-type="s-search-result"]',
        "div.s-result-item",
        "div.sg-col-4-of-12",
    ),
    price_wait_selectors=(".a-price .a-offscreen", "span.a-price-whole"),
    settle_ms=1000,
    scroll_steps=3,
)
