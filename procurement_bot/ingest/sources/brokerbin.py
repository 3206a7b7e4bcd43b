"""BrokerBin part-key results profile.

Rows carry no labelled columns, so most fields are found by scanning cells
for known vocabularies and shapes.
"""

from procurement_bot.ingest.sources.base import CellRule, FieldRule, LooseRowSpec, SourceProfile

KNOWN_CONDITIONS = ("NEW", "REF", "USED", "NOB", "F/S", "OEMREF", "ASIS", "REP")
KNOWN_MANUFACTURERS = (
    "DELL", "CISCO", "JUNIPER", "HP", "HPE", "LENOVO", "IBM", "ARISTA", "NETAPP", "FORTINET",
)
COUNTRY_PATTERN = r"USA|GBR|IRL|DEU|FRA|ESP|CAN|CHN|NLD|UAE|SWE|ITA|POL|ISR|DNK"

BROKERBIN = SourceProfile(
    name="brokerbin",
    profile_name="pw-profile-brokerbin",
    start_url="https://www.brokerbin.com/",
    search_url=(
        "https://members.brokerbin.com/partkey?login={login}&parts={term}"
        "&clm=partclei&mfgfilter="
    ),
    container_selectors=("tr",),
    container_requires='input[name="partcart[]"]',
    fields={
        "seller": (FieldRule(".company .compinfo_name"), FieldRule(".company")),
        "price": (
            FieldRule('a[rel*="subtype=price"]'),
            FieldRule('td.search a[onclick^="xe("]'),
            FieldRule(pattern=r"\$?\s*\d{1,6}(?:\.\d{2})?"),
        ),
        "quantity": (
            FieldRule('a[rel*="subtype=qty"]', pattern=r"\d+"),
            CellRule(class_contains="search", pattern=r"\d+"),
        ),
        "manufacturer": (CellRule(vocabulary=KNOWN_MANUFACTURERS, upper=True),),
        "condition": (CellRule(vocabulary=KNOWN_CONDITIONS, follows=KNOWN_MANUFACTURERS, upper=True),),
        "location": (CellRule(class_contains="search", pattern=COUNTRY_PATTERN),),
        "age_days": (CellRule(class_contains="search", align="center", pattern=r"\d{1,2}"),),
        "description": (FieldRule("td[colspan]"),),
    },
    require_field="seller",
    description_fields=("description",),
    loose_row=LooseRowSpec(),
    noise_seller_patterns=(r"(?i)privacy", r"^©\s*\d{4}"),
    strict_price=True,
    result_wait_selectors=('input[name="partcart[]"]',),
    no_results_selectors=(".error", ".hr_partkey_not_found"),
    alternate_search_url="https://members.brokerbin.com/advanced?descr={term}",
    scroll_steps=1,
)
