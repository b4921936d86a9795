"""
Streamlit Frontend for fintrack

Pages for the daily routine of keeping personal finances in order:
recording transactions, watching budgets and importing bank exports.

DESIGN PRINCIPLES:
1. The UI only calls services; every rule lives below it
2. Imports always show a preview before anything is saved
3. Clear error messages, shown where the problem is
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from fintrack.auth import evaluate_password
from fintrack.config import validate_all_settings
from fintrack.imports import (
    SAMPLE_ACCOUNTS_CSV,
    SAMPLE_TRANSACTIONS_CSV,
    CSVImportError,
    ImportPreview,
)
from fintrack.ledger import LedgerError
from fintrack.models import (
    Account,
    AccountType,
    BudgetStatus,
    Transaction,
    TransactionGroup,
    TransactionMode,
    TransactionNature,
    TransactionType,
)
from fintrack.orchestrator import FinanceApp, create_app_components
from fintrack.queries import TransactionFilter
from fintrack.services.storage import StorageError


st.set_page_config(
    page_title="fintrack",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_app() -> FinanceApp:
    """Get or create application components (cached)."""
    app = create_app_components()
    run_async(app.initialize())
    return app


def money(amount: Decimal) -> str:
    return f"₹{amount:,.2f}"


PAGES = [
    "📊 Dashboard",
    "💸 Transactions",
    "🏦 Accounts",
    "🏷️ Categories",
    "🎯 Budgets",
    "🗂️ Groups",
    "📥 Import Transactions",
    "📜 Audit Log",
    "⚙️ Settings",
]


def main():
    """Main application entry point."""
    app = get_app()
    user_id = app.settings.app.local_user_id

    st.sidebar.title("💰 fintrack")
    st.sidebar.markdown("---")
    page = st.sidebar.radio("Navigate to:", PAGES, index=0)

    renderers = {
        "📊 Dashboard": render_dashboard_page,
        "💸 Transactions": render_transactions_page,
        "🏦 Accounts": render_accounts_page,
        "🏷️ Categories": render_categories_page,
        "🎯 Budgets": render_budgets_page,
        "🗂️ Groups": render_groups_page,
        "📥 Import Transactions": render_import_page,
        "📜 Audit Log": render_audit_page,
    }
    if page == "⚙️ Settings":
        render_settings_page()
    else:
        renderers[page](app, user_id)


def render_dashboard_page(app: FinanceApp, user_id):
    today = date.today()
    summary = run_async(app.dashboard.summary(user_id, today))

    st.title("📊 Dashboard")
    st.markdown(f"Your financial overview for {today.strftime('%B %Y')}")

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Income", money(summary.month_income))
    col2.metric("Total Expenses", money(summary.month_expenses))
    col3.metric("Net Cashflow", money(summary.net_cashflow))
    col4.metric("Total Balance", money(summary.total_balance))

    left, right = st.columns(2)
    with left:
        st.subheader("Cashflow")
        st.bar_chart(
            [
                {"month": m.label, "Income": float(m.income), "Expenses": float(m.expenses)}
                for m in summary.cashflow
            ],
            x="month",
        )
    with right:
        st.subheader("Spending by Category")
        if summary.category_breakdown:
            for item in summary.category_breakdown:
                st.markdown(
                    f"<span style='color:{item.color}'>●</span> {item.name}: {money(item.amount)}",
                    unsafe_allow_html=True,
                )
        else:
            st.info("No spending recorded this month.")

    st.subheader("Recent Transactions")
    render_transaction_table(summary.recent_transactions)

    st.subheader("Account Balances")
    for account in summary.accounts:
        st.markdown(f"**{account.name}** ({account.account_type.value}): {money(account.closing_balance)}")


def render_transaction_table(transactions: list[Transaction]):
    if not transactions:
        st.info("No transactions yet.")
        return
    st.dataframe(
        [
            {
                "Date": t.transaction_date.isoformat(),
                "Description": t.description or t.party or "",
                "Category": t.category_name or "",
                "Type": t.transaction_type.value,
                "Amount": float(t.amount),
            }
            for t in transactions
        ],
        use_container_width=True,
    )


def render_transactions_page(app: FinanceApp, user_id):
    st.title("💸 Transactions")

    accounts = run_async(app.accounts.list_accounts(user_id))
    categories = run_async(app.catalog.list_categories(user_id))

    col1, col2, col3 = st.columns(3)
    with col1:
        search = st.text_input("Search", placeholder="Description, party, remarks...")
    with col2:
        txn_type = st.selectbox(
            "Type",
            options=[None] + list(TransactionType),
            format_func=lambda x: "All Types" if x is None else x.value,
        )
    with col3:
        account = st.selectbox(
            "Account",
            options=[None] + accounts,
            format_func=lambda a: "All Accounts" if a is None else a.name,
        )

    flt = TransactionFilter(
        search=search or None,
        transaction_type=txn_type,
        account_id=account.id if account else None,
    )
    result = run_async(app.queries.execute(user_id, flt))
    st.caption(f"{result.query_description} · {result.result_count} found")
    render_transaction_table(result.transactions)

    with st.expander("➕ Add Transaction"):
        with st.form("add_transaction"):
            txn_date = st.date_input("Date", value=date.today())
            amount = st.number_input("Amount", min_value=0.01, step=0.01, format="%.2f")
            new_type = st.selectbox("Type", options=list(TransactionType), format_func=lambda x: x.value)
            txn_account = st.selectbox(
                "Account",
                options=[None] + accounts,
                format_func=lambda a: "No account" if a is None else a.name,
            )
            category = st.selectbox(
                "Category",
                options=[None] + categories,
                format_func=lambda c: "Uncategorized" if c is None else c.name,
            )
            mode = st.selectbox(
                "Mode",
                options=[None] + list(TransactionMode),
                format_func=lambda x: "-" if x is None else x.value,
            )
            nature = st.selectbox(
                "Nature",
                options=[None] + list(TransactionNature),
                format_func=lambda x: "-" if x is None else x.value,
            )
            description = st.text_input("Description")
            party = st.text_input("Party")

            if st.form_submit_button("Save", type="primary"):
                try:
                    run_async(app.transactions.create_transaction(Transaction(
                        user_id=user_id,
                        transaction_date=txn_date,
                        amount=Decimal(str(amount)),
                        currency=app.settings.app.default_currency,
                        transaction_type=new_type,
                        account_id=txn_account.id if txn_account else None,
                        category_id=category.id if category else None,
                        category_name=category.name if category else None,
                        transaction_mode=mode,
                        transaction_nature=nature,
                        description=description or None,
                        party=party or None,
                    )))
                    st.success("Transaction saved")
                    st.rerun()
                except (LedgerError, StorageError, ValueError) as e:
                    st.error(f"Failed to save: {e}")


def render_accounts_page(app: FinanceApp, user_id):
    st.title("🏦 Accounts")

    for account in run_async(app.accounts.list_accounts(user_id)):
        col1, col2 = st.columns([4, 1])
        line = f"**{account.name}** · {account.account_type.value} · {money(account.closing_balance)}"
        if account.credit_utilization is not None:
            line += f" · {account.credit_utilization:.0%} of limit used"
        col1.markdown(line)
        if col2.button("Delete", key=f"del_acc_{account.id}"):
            run_async(app.accounts.delete_account(user_id, account.id))
            st.rerun()

    with st.expander("➕ Add Account"):
        with st.form("add_account"):
            name = st.text_input("Name")
            account_type = st.selectbox("Type", options=list(AccountType), format_func=lambda x: x.value)
            opening = st.number_input("Opening balance", step=0.01, format="%.2f")
            issuer = st.text_input("Issuer (bank)")
            if st.form_submit_button("Save", type="primary"):
                try:
                    run_async(app.accounts.create_account(Account(
                        user_id=user_id,
                        name=name,
                        account_type=account_type,
                        opening_balance=Decimal(str(opening)),
                        currency=app.settings.app.default_currency,
                        issuer_name=issuer or None,
                    )))
                    st.rerun()
                except (LedgerError, StorageError, ValueError) as e:
                    st.error(f"Failed to save: {e}")

    with st.expander("📥 Import Accounts from CSV"):
        st.download_button(
            "Download Sample CSV",
            SAMPLE_ACCOUNTS_CSV,
            file_name="sample_accounts.csv",
            mime="text/csv",
        )
        uploaded = st.file_uploader("Choose a CSV file", type=["csv"], key="account_csv")
        if uploaded:
            try:
                preview = run_async(app.account_importer.parse(user_id, uploaded.name, uploaded.getvalue()))
            except CSVImportError as e:
                st.error(str(e))
                return
            render_preview(preview)
            if st.button(f"Import {preview.importable_count} Accounts", type="primary"):
                try:
                    result = run_async(app.account_importer.commit(preview))
                    st.success(f"Successfully imported {result.imported_count} accounts")
                except (CSVImportError, StorageError) as e:
                    st.error(f"Failed to import accounts: {e}")


def render_categories_page(app: FinanceApp, user_id):
    st.title("🏷️ Categories")

    for category in run_async(app.catalog.list_categories(user_id)):
        col1, col2 = st.columns([4, 1])
        badge = " (built-in)" if category.is_system else ""
        col1.markdown(
            f"<span style='color:{category.color or '#94A3B8'}'>●</span> {category.name}{badge}",
            unsafe_allow_html=True,
        )
        if not category.is_system and col2.button("Delete", key=f"del_cat_{category.id}"):
            run_async(app.catalog.delete_category(user_id, category.id))
            st.rerun()

    with st.form("add_category"):
        name = st.text_input("New category")
        color = st.color_picker("Colour", value="#3B82F6")
        if st.form_submit_button("Add"):
            try:
                run_async(app.catalog.create_category(user_id, name, color=color.upper()))
                st.rerun()
            except (LedgerError, ValueError) as e:
                st.error(str(e))


def render_budgets_page(app: FinanceApp, user_id):
    st.title("🎯 Budgets")
    today = date.today()
    col1, col2 = st.columns(2)
    month = col1.selectbox("Month", options=list(range(1, 13)), index=today.month - 1)
    year = col2.number_input("Year", value=today.year, step=1)

    overview = run_async(app.budgets.budgets_with_spending(user_id, month, int(year)))
    if overview.budgets:
        st.metric(
            "Total",
            f"{money(overview.total_spent)} of {money(overview.total_budget)}",
            f"{overview.overall_progress:.0f}%",
        )
        icons = {BudgetStatus.OK: "🟢", BudgetStatus.WARNING: "🟡", BudgetStatus.OVER: "🔴"}
        for item in overview.budgets:
            st.markdown(
                f"{icons[item.status]} **{item.category_name}**: "
                f"{money(item.spent)} / {money(item.amount)} "
                f"({money(item.remaining)} left)"
            )
            st.progress(min(item.progress_percent / 100, 1.0))
    else:
        st.info("No budgets for this month yet.")

    with st.form("set_budget"):
        categories = run_async(app.catalog.list_categories(user_id))
        category = st.selectbox("Category", options=categories, format_func=lambda c: c.name)
        amount = st.number_input("Amount", min_value=0.01, step=100.0, format="%.2f")
        if st.form_submit_button("Set Budget", type="primary"):
            try:
                run_async(app.budgets.set_budget(
                    user_id, category.id, Decimal(str(amount)), month, int(year),
                ))
                st.rerun()
            except (LedgerError, ValueError) as e:
                st.error(str(e))


def render_groups_page(app: FinanceApp, user_id):
    st.title("🗂️ Groups")
    counts = run_async(app.catalog.group_transaction_counts(user_id))
    for group in run_async(app.catalog.list_groups(user_id)):
        st.markdown(f"**{group.name}** · {counts.get(group.id, 0)} transactions")
        if group.description:
            st.caption(group.description)

    with st.form("add_group"):
        name = st.text_input("Name")
        description = st.text_area("Description")
        start = st.date_input("Start date", value=None)
        end = st.date_input("End date", value=None)
        if st.form_submit_button("Create Group"):
            try:
                run_async(app.catalog.create_group(TransactionGroup(
                    user_id=user_id,
                    name=name,
                    description=description or None,
                    start_date=start,
                    end_date=end,
                )))
                st.rerun()
            except (LedgerError, ValueError) as e:
                st.error(str(e))


def render_preview(preview: ImportPreview):
    """Counts, unmatched accounts and the paged error summary of a preview."""
    if preview.invalid_count or preview.duplicate_count:
        st.warning(preview.summary_line())
    else:
        st.success(preview.summary_line())

    if preview.unmatched_accounts:
        st.warning(
            f"{len(preview.unmatched_accounts)} account(s) not found - "
            "those transactions will have no account linked"
        )
        for unmatched in preview.unmatched_accounts:
            st.markdown(f"- {unmatched.name} ({unmatched.count} rows)")

    for group in preview.error_summary():
        with st.expander(f"{group.message} ({group.count})"):
            pages = preview.page_count(group.message)
            page = 0
            if pages > 1:
                page = st.number_input(
                    "Page", min_value=1, max_value=pages, value=1,
                    key=f"page_{group.message}",
                ) - 1
            for row in preview.page(group.message, page):
                st.markdown(f"Row {row.row_number}: {', '.join(row.errors)}")


def render_import_page(app: FinanceApp, user_id):
    st.title("📥 Import Transactions")
    st.markdown("Upload a CSV file with your transactions. Required columns: txnDate, amount, txnType.")

    st.download_button(
        "Download Sample CSV",
        SAMPLE_TRANSACTIONS_CSV,
        file_name="sample_transactions.csv",
        mime="text/csv",
    )

    uploaded = st.file_uploader("Choose a CSV file", type=["csv"], key="transaction_csv")
    if not uploaded:
        return

    try:
        preview = run_async(app.transaction_importer.parse(user_id, uploaded.name, uploaded.getvalue()))
    except CSVImportError as e:
        st.error(str(e))
        return

    render_preview(preview)
    create_missing = False
    if preview.unmatched_accounts:
        create_missing = st.checkbox("Create the missing accounts as bank accounts")

    if st.button(f"Import {preview.valid_count} Transactions", type="primary"):
        try:
            result = run_async(app.transaction_importer.commit(preview, create_missing))
            st.success(f"Successfully imported {result.imported_count} transactions")
        except (CSVImportError, StorageError, LedgerError) as e:
            st.error(f"Failed to import transactions: {e}")


def render_audit_page(app: FinanceApp, user_id):
    st.title("📜 Audit Log")
    events = run_async(app.storage.audit.get_recent_events(user_id=user_id, limit=100))
    if not events:
        st.info("Nothing recorded yet.")
        return
    st.dataframe(
        [
            {
                "When": e.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                "Event": e.event_type.value,
                "Table": e.table_name or "",
                "Action": e.action.value if e.action else "",
                "Description": e.description,
            }
            for e in events
        ],
        use_container_width=True,
    )


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Application", "app"),
        ("Google Sheets (Storage)", "google_sheets"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Password Check")
    password = st.text_input("Try a password", type="password")
    if password:
        strength = evaluate_password(password)
        st.progress(strength.score, text=f"Password strength: {strength.label}")
        for requirement in strength.requirements:
            st.markdown(f"{'✅' if requirement.passed else '❌'} {requirement.label}")

    st.markdown("---")
    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the available variables."
    )


if __name__ == "__main__":
    main()
