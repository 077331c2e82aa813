from __future__ import annotations

from canfs_grid.db.gateway import OrderBy, RemoteStore
from canfs_grid.models.field_definition import FieldDefinition as F
from canfs_grid.models.field_definition import FieldType as T

from .parent_child import ChildCollectionSpec, HeaderSpec, ParentChildManager

"""Financial needs analysis (FNA) form: one header per client plus child tables."""

__all__ = [
    "US_STATES",
    "ASSET_TAX_TYPES",
    "LIABILITY_TYPES",
    "INSURED_ROLES",
    "INSURANCE_TYPES",
    "INCOME_ROLES",
    "INCOME_TYPES",
    "OWN_OR_RENT",
    "HEADER_GROUPS",
    "FNA_HEADER",
    "FNA_COLLECTIONS",
    "fna_manager",
]

US_STATES = (
    "", "Alabama", "Alaska", "Arizona", "Arkansas", "California", "Colorado", "Connecticut",
    "Delaware", "Florida", "Georgia", "Hawaii", "Idaho", "Illinois", "Indiana", "Iowa",
    "Kansas", "Kentucky", "Louisiana", "Maine", "Maryland", "Massachusetts", "Michigan",
    "Minnesota", "Mississippi", "Missouri", "Montana", "Nebraska", "Nevada", "New Hampshire",
    "New Jersey", "New Mexico", "New York", "North Carolina", "North Dakota", "Ohio",
    "Oklahoma", "Oregon", "Pennsylvania", "Rhode Island", "South Carolina", "South Dakota",
    "Tennessee", "Texas", "Utah", "Vermont", "Virginia", "Washington", "West Virginia",
    "Wisconsin", "Wyoming",
)
ASSET_TAX_TYPES = ("TAX_ADVANTAGED", "TAXABLE", "TAX_DEFERRED")
LIABILITY_TYPES = ("CREDIT_CARD", "AUTO_LOAN", "STUDENT_LOAN", "PERSONAL_LOAN", "OTHER")
INSURED_ROLES = ("", "SPOUSE")
INSURANCE_TYPES = ("LIFE", "HEALTH")
INCOME_ROLES = ("", "SPOUSE")
INCOME_TYPES = (
    "ANNUAL_SALARY",
    "BONUS_COMMISSIONS",
    "RENTAL_INCOME",
    "CHILD_SUPPORT_ALIMONY",
    "PENSION",
    "SOCIAL_SECURITY",
    "OTHER",
)
OWN_OR_RENT = ("Own", "Rent")

# header fields, grouped by form tab
HEADER_GROUPS: dict[str, tuple[F, ...]] = {
    "client_family": (
        F("spouse_name", "Spouse Name"),
        F("spouse_dob", "Spouse DOB", T.DATE, date_only=True),
        F("client_dob", "Client DOB", T.DATE, date_only=True),
        F("address", "Address"),
        F("city", "City"),
        F("state", "State", T.SELECT, options=US_STATES),
        F("zip_code", "Zip Code"),
        F("home_phone", "Home Phone"),
        F("mobile_phone", "Mobile Phone"),
        F("personal_email", "Personal Email"),
        F("spouse_mobile_phone", "Spouse Mobile Phone"),
        F("spouse_email", "Spouse Email"),
        F("more_children_planned", "More Children Planned", T.BOOLEAN),
        F("more_children_count", "More Children Count", T.NUMBER),
    ),
    "goals_properties": (
        F("goals_text", "Goals", T.TEXTAREA),
        F("own_or_rent", "Own or Rent", T.SELECT, options=OWN_OR_RENT),
        F("properties_notes", "Properties Notes", T.TEXTAREA),
    ),
    "assets": (
        F("has_old_401k", "Has Old 401(k)", T.BOOLEAN),
        F("expects_lump_sum", "Expects Lump Sum", T.BOOLEAN),
    ),
    "insurance": (
        F("li_debt", "Debt", T.NUMBER),
        F("li_income", "Income Replacement", T.NUMBER),
        F("li_mortgage", "Mortgage", T.NUMBER),
        F("li_education", "Education", T.NUMBER),
        F("li_total_needed", "Total Needed", T.NUMBER),
        F("li_insurance_in_place", "Insurance In Place", T.NUMBER),
        F("li_insurance_gap", "Insurance Gap", T.NUMBER),
    ),
    "income_estate": (
        F("has_will", "Has Will", T.BOOLEAN),
        F("will_last_updated", "Will Last Updated", T.DATE, date_only=True),
        F("has_trust", "Has Trust", T.BOOLEAN),
        F("trust_type", "Trust Type"),
        F("trust_purpose", "Trust Purpose", T.TEXTAREA),
        F("retirement_monthly_need", "Retirement Monthly Need", T.NUMBER),
        F("retirement_target_date", "Retirement Target Date", T.DATE, date_only=True),
        F("monthly_commitment", "Monthly Commitment", T.NUMBER),
        F("next_appointment_date", "Next Appointment Date", T.DATE, date_only=True),
        F("next_appointment_time", "Next Appointment Time", T.TIME),
    ),
}

FNA_HEADER = HeaderSpec(
    table="fna_header",
    owner_fk="client_id",
    fields=tuple(f for group in HEADER_GROUPS.values() for f in group),
)

FNA_COLLECTIONS: tuple[ChildCollectionSpec, ...] = (
    ChildCollectionSpec(
        name="children",
        table="fna_children",
        columns=(
            F("child_name", "Child Name", required=True),
            F("child_age", "Age", T.NUMBER),
            F("child_dob", "DOB", T.DATE, date_only=True),
            F("education_goal", "Education Goal"),
            F("current_savings", "Current Savings", T.NUMBER),
            F("monthly_contribution", "Monthly Contribution", T.NUMBER),
            F("notes", "Notes", T.TEXTAREA),
        ),
        order_by=(OrderBy("child_name"),),
    ),
    ChildCollectionSpec(
        name="properties",
        table="fna_properties",
        columns=(
            F("address", "Address", required=True),
            F("mortgage_company", "Mortgage Company"),
            F("market_value", "Market Value", T.NUMBER),
            F("balance", "Balance", T.NUMBER),
            F("interest_rate", "Interest Rate (%)", T.NUMBER),
            F("payment", "Payment", T.NUMBER),
            F("notes", "Notes", T.TEXTAREA),
        ),
        order_by=(OrderBy("address"),),
    ),
    ChildCollectionSpec(
        name="assets",
        table="fna_assets",
        columns=(
            F("tax_type", "Tax Type", T.SELECT, options=ASSET_TAX_TYPES),
            F("asset_name", "Asset Name", required=True),
            F("asset_category", "Category"),
            F("balance", "Balance", T.NUMBER),
            F("monthly_contribution", "Monthly Contribution", T.NUMBER),
            F("employer_match", "Employer Match", T.NUMBER),
            F("rate_of_return", "Rate of Return (%)", T.NUMBER),
            F("notes", "Notes", T.TEXTAREA),
        ),
        order_by=(OrderBy("asset_name"),),
    ),
    ChildCollectionSpec(
        name="liabilities",
        table="fna_liabilities",
        columns=(
            F("liability_type", "Liability Type", T.SELECT, options=LIABILITY_TYPES, required=True),
            F("description", "Description"),
            F("lender", "Lender"),
            F("balance", "Balance", T.NUMBER),
            F("interest_rate", "Interest Rate (%)", T.NUMBER),
            F("min_payment", "Min Payment", T.NUMBER),
            F("current_payment", "Current Payment", T.NUMBER),
            F("notes", "Notes", T.TEXTAREA),
        ),
        order_by=(OrderBy("liability_type"),),
    ),
    ChildCollectionSpec(
        name="insurance",
        table="fna_insurance",
        columns=(
            F("insured_role", "Insured Role", T.SELECT, options=INSURED_ROLES),
            F("insurance_type", "Insurance Type", T.SELECT, options=INSURANCE_TYPES, required=True),
            F("provider", "Provider"),
            F("policy_type", "Policy Type"),
            F("premium", "Premium", T.NUMBER),
            F("term", "Term"),
            F("death_benefit", "Death Benefit", T.NUMBER),
            F("cash_value", "Cash Value", T.NUMBER),
            F("year_purchased", "Year Purchased", T.NUMBER),
            F("riders", "Riders"),
            F("tobacco", "Tobacco", T.BOOLEAN),
            F("marketplace", "Marketplace"),
            F("notes", "Notes", T.TEXTAREA),
        ),
        order_by=(OrderBy("insured_role"),),
    ),
    ChildCollectionSpec(
        name="income",
        table="fna_income",
        columns=(
            F("fna_income_role", "Income Role", T.SELECT, options=INCOME_ROLES),
            F("fna_income_type", "Income Type", T.SELECT, options=INCOME_TYPES, required=True),
            F("amount", "Amount", T.NUMBER),
            F("notes", "Notes", T.TEXTAREA),
        ),
        order_by=(OrderBy("fna_income_role"),),
        blank_keys=("fna_income_role", "fna_income_type"),
    ),
    ChildCollectionSpec(
        name="tax_refund",
        table="fna_tax_refund",
        columns=(F("last_year_tax_refund", "Last Year Tax Refund", T.NUMBER),),
        max_rows=1,
    ),
)


def fna_manager(store: RemoteStore, **kwargs) -> ParentChildManager:
    """Row manager for one client's FNA form."""
    return ParentChildManager(store, FNA_HEADER, FNA_COLLECTIONS, **kwargs)
