import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import logging
from dataclasses import replace
from datetime import date

import streamlit as st
import pandas as pd
import numpy as np
import plotly.express as px
import plotly.graph_objects as go

from bookkeeping.config import load_settings
from bookkeeping.datasheet import (
    DatasheetSync,
    datasheet_totals,
    filter_orders,
    merge_orders,
    order_from_row,
    paginate,
)
from bookkeeping.docstore import DocumentStore
from bookkeeping.domain import Account, AccountStatus, Branch, Market, Transaction, TransactionType, enum_value
from bookkeeping.errors import BookkeepingError, LockedError
from bookkeeping.filters import LedgerFilter, account_matches
from bookkeeping.ledger import today_month
from bookkeeping.logging import setup_logging
from bookkeeping import reports
from bookkeeping.services import LedgerService
from bookkeeping.spreadsheet import (
    account_template,
    accounts_frame,
    read_rows,
    to_excel_bytes,
    transaction_template,
    transactions_frame,
)

st.set_page_config(page_title="Bookkeeping", layout="wide")

settings = load_settings()
setup_logging("app", log_dir=settings.log_dir)
logger = logging.getLogger("app")

if "service" not in st.session_state:
    st.session_state.service = LedgerService.from_seed(settings.seed_path)
service: LedgerService = st.session_state.service


def vnd(v) -> str:
    return f"{v:,.0f} ₫"


def month_picker(label: str = "Month", key: str = "month") -> str:
    months = service.months()
    current = settings.default_month or today_month()
    if current not in months:
        months.append(current)
    months = sorted(months, reverse=True)
    return st.selectbox(label, months, index=months.index(current), key=key)


def run_async(coro):
    return asyncio.run(coro)


def profit_table(report: reports.ProfitReport) -> pd.DataFrame:
    rows = list(report.rows) + [report.total]
    return pd.DataFrame([
        {
            "Name": r.name,
            "Revenue": r.revenue,
            "Expense": r.expense,
            "Profit": r.profit,
            "Margin %": round(r.margin, 1),
            "Note": r.note,
        }
        for r in rows
    ])


menu = st.sidebar.radio(
    "Menu",
    ["Reports", "Master data", "Revenue", "Cost", "Ledger", "Management reports", "Datasheet"],
)

# ---------------------------------------------------------------- Reports
if menu == "Reports":
    st.header("Overview")
    month = month_picker()
    summary = service.monthly_summary(month)
    k1, k2, k3, k4 = st.columns(4)
    k1.metric("Opening", vnd(summary.opening))
    k2.metric("Revenue", vnd(summary.revenue_sum))
    k3.metric("Expense", vnd(summary.expense_sum))
    k4.metric("Closing", vnd(summary.closing))

    history = pd.DataFrame([s.__dict__ for s in service.monthly_history(month)])
    if not history.empty:
        fig = go.Figure()
        fig.add_bar(x=history["month"], y=history["revenue_sum"], name="Revenue")
        fig.add_bar(x=history["month"], y=history["expense_sum"], name="Expense")
        fig.add_scatter(x=history["month"], y=history["closing"], name="Closing", mode="lines+markers")
        fig.update_layout(barmode="group", title="Monthly cash position")
        st.plotly_chart(fig, use_container_width=True)

    branch = profit_table(service.branch_report(month))
    st.subheader("By branch")
    st.dataframe(branch, use_container_width=True)

# ---------------------------------------------------------------- Master data
elif menu == "Master data":
    st.header("Chart of accounts")
    term = st.text_input("Search")
    accounts = [a for a in service.accounts() if account_matches(a, term)]
    acc_df = accounts_frame(accounts)
    acc_df["balance"] = [service.account_balance(a.code) for a in accounts]
    st.dataframe(acc_df, use_container_width=True)

    with st.expander("Add account"):
        with st.form("add_account"):
            c1, c2, c3 = st.columns(3)
            code = c1.text_input("Code")
            name = c2.text_input("Name")
            category = c3.text_input("Category")
            tx_type = c1.selectbox("Type", [t.value for t in TransactionType])
            branch = c2.selectbox("Branch", [b.value for b in Branch])
            market = c3.selectbox("Market", [m.value for m in Market])
            note = st.text_input("Note")
            if st.form_submit_button("Save"):
                try:
                    service.add_account(Account(
                        id="", code=code, name=name, category=category,
                        type=TransactionType(tx_type), branch=Branch(branch), market=Market(market), note=note,
                    ))
                    st.success(f"Account {code} added")
                except BookkeepingError as e:
                    st.error(str(e))

    with st.expander("Edit account"):
        options = {f"{a.code} - {a.name}": a for a in service.accounts()}
        if options:
            current = options[st.selectbox("Account", list(options), key="edit_account_choice")]
            with st.form("edit_account"):
                c1, c2, c3 = st.columns(3)
                name = c1.text_input("Name", value=current.name)
                category = c2.text_input("Category", value=current.category)
                status = c3.selectbox("Status", [s.value for s in AccountStatus],
                                      index=[s.value for s in AccountStatus].index(enum_value(current.status)))
                branches = [b.value for b in Branch]
                markets = [m.value for m in Market]
                branch = c1.selectbox("Branch", branches, index=branches.index(enum_value(current.branch)))
                market = c2.selectbox("Market", markets, index=markets.index(enum_value(current.market)))
                note = c3.text_input("Note", value=current.note)
                if st.form_submit_button("Update"):
                    try:
                        service.update_account(current.id, {
                            "name": name, "category": category, "status": status,
                            "branch": branch, "market": market, "note": note,
                        })
                        st.success(f"Account {current.code} updated")
                    except BookkeepingError as e:
                        st.error(str(e))

    with st.expander("Remove account"):
        options = {f"{a.code} - {a.name}": a for a in service.accounts()}
        if options:
            choice = st.selectbox("Account", list(options))
            refs = service.store.references(options[choice].code)
            if refs:
                st.warning(f"{refs} transactions still use this code")
            if st.button("Remove"):
                service.remove_account(options[choice].id)
                st.rerun()

    st.subheader("Import")
    st.download_button("⬇ Template", account_template(), file_name="accounts_template.xlsx")
    upload = st.file_uploader("Accounts file", type=["xlsx", "xls", "csv"], key="acc_upload")
    if upload is not None and st.button("Import accounts"):
        try:
            result = service.import_accounts(read_rows(upload.getvalue(), upload.name))
            st.success(f"Imported {result.imported}, skipped {result.skipped}")
        except BookkeepingError as e:
            st.error(str(e))

# ---------------------------------------------------------------- Revenue / Cost
elif menu in ("Revenue", "Cost"):
    tx_type = TransactionType.REVENUE if menu == "Revenue" else TransactionType.EXPENSE
    st.header(menu)
    codes = [a.code for a in service.accounts() if a.type == tx_type] or [a.code for a in service.accounts()]

    with st.form(f"add_{tx_type.value}"):
        c1, c2, c3 = st.columns(3)
        tx_date = c1.date_input("Date", value=date.today())
        source = c2.text_input("Source")
        code = c3.selectbox("Account", codes)
        branch = c1.selectbox("Branch", [b.value for b in Branch])
        market = c2.selectbox("Market", [m.value for m in Market])
        amount = c3.number_input("Amount (VND)", min_value=0, step=100000)
        description = st.text_input("Description")
        method = st.text_input("Method", value="CK")
        if st.form_submit_button("Save"):
            try:
                service.add_transaction(Transaction(
                    id="", date=tx_date, type=tx_type, source=source,
                    branch=Branch(branch), market=Market(market), account_code=code,
                    description=description, amount=int(amount), method=method,
                ))
                st.success("Saved")
            except LockedError as e:
                st.error(f"🔒 {e}")
            except BookkeepingError as e:
                st.error(str(e))

    rows = service.transactions(tx_type)
    df = transactions_frame(rows)
    st.dataframe(df, use_container_width=True)
    st.metric("Total", vnd(int(df["amount"].sum()) if not df.empty else 0))
    st.download_button("⬇ Export", to_excel_bytes(df, sheet_name=tx_type.value), file_name=f"{menu.lower()}.xlsx")

    with st.expander("Edit"):
        options = {f"{t.date} {t.account_code} {vnd(t.amount)} ({t.id[:8]})": t for t in rows}
        if options:
            current = options[st.selectbox("Transaction", list(options), key=f"edit_{tx_type.value}_choice")]
            if service.is_locked(current):
                st.info("🔒 This period is locked")
            with st.form(f"edit_{tx_type.value}"):
                c1, c2, c3 = st.columns(3)
                new_date = c1.date_input("Date", value=current.date)
                new_source = c2.text_input("Source", value=current.source)
                new_code = c3.text_input("Account", value=current.account_code)
                branches = [b.value for b in Branch]
                markets = [m.value for m in Market]
                new_branch = c1.selectbox("Branch", branches, index=branches.index(enum_value(current.branch)))
                new_market = c2.selectbox("Market", markets, index=markets.index(enum_value(current.market)))
                new_amount = c3.number_input("Amount (VND)", min_value=0, step=100000, value=current.amount)
                new_description = st.text_input("Description", value=current.description)
                new_method = st.text_input("Method", value=current.method)
                if st.form_submit_button("Update"):
                    try:
                        service.update_transaction(current.id, {
                            "date": new_date, "source": new_source, "account_code": new_code,
                            "branch": new_branch, "market": new_market, "amount": int(new_amount),
                            "description": new_description, "method": new_method,
                        })
                        st.success("Updated")
                    except LockedError as e:
                        st.error(f"🔒 {e}")
                    except BookkeepingError as e:
                        st.error(str(e))

    with st.expander("Delete"):
        options = {f"{t.date} {t.account_code} {vnd(t.amount)} ({t.id[:8]})": t for t in rows}
        if options:
            choice = st.selectbox("Transaction", list(options))
            if service.is_locked(options[choice]):
                st.info("🔒 This period is locked")
            if st.button("Delete"):
                try:
                    service.remove_transaction(options[choice].id)
                    st.rerun()
                except LockedError as e:
                    st.error(f"🔒 {e}")

    st.subheader("Import")
    st.download_button("⬇ Template", transaction_template(tx_type), file_name=f"{menu.lower()}_template.xlsx")
    upload = st.file_uploader("File", type=["xlsx", "xls", "csv"], key=f"{tx_type.value}_upload")
    if upload is not None and st.button("Import"):
        try:
            result = service.import_transactions(read_rows(upload.getvalue(), upload.name), tx_type)
            st.success(f"Imported {result.imported} rows")
            if result.skipped or result.locked:
                st.warning(f"{result.skipped} invalid rows, {result.locked} rows in locked periods")
                st.dataframe(pd.DataFrame(result.errors, columns=["Row", "Reason"]))
        except BookkeepingError as e:
            st.error(str(e))

# ---------------------------------------------------------------- Ledger
elif menu == "Ledger":
    st.header("Ledger")
    daily_tab, monthly_tab = st.tabs(["Daily", "Monthly"])

    with daily_tab:
        c1, c2, c3 = st.columns(3)
        branch = c1.selectbox("Branch", ["All"] + [b.value for b in Branch])
        code = c2.text_input("Account code")
        term = st.text_input("Search description")
        period = c3.date_input("Period", value=())
        start, end = (period + (None, None))[:2] if isinstance(period, tuple) else (period, None)
        flt = LedgerFilter(
            branch=None if branch == "All" else branch,
            account_code=code or None,
            start=start,
            end=end,
            search=term,
        )
        rows = service.daily_ledger(flt)
        st.dataframe(pd.DataFrame([
            {
                "Date": r.transaction.date,
                "Account": r.transaction.account_code,
                "Branch": enum_value(r.transaction.branch),
                "Description": r.transaction.description,
                "Revenue": r.transaction.amount if r.transaction.type == TransactionType.REVENUE else 0,
                "Expense": r.transaction.amount if r.transaction.type == TransactionType.EXPENSE else 0,
                "Balance": r.running_balance,
            }
            for r in rows
        ]), use_container_width=True)

    with monthly_tab:
        month = month_picker(key="ledger_month")
        summary = service.monthly_summary(month)
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Opening", vnd(summary.opening))
        c2.metric("Revenue", vnd(summary.revenue_sum))
        c3.metric("Expense", vnd(summary.expense_sum))
        c4.metric("Closing", vnd(summary.closing))

        for row in service.breakdown(month):
            cols = st.columns([2, 2, 2, 2, 2, 2, 1])
            cols[0].write(row.account_code)
            cols[1].write(row.branch)
            cols[2].write(vnd(row.opening))
            cols[3].write(vnd(row.revenue_sum))
            cols[4].write(vnd(row.expense_sum))
            cols[5].write(vnd(row.closing))
            label = "🔓" if row.is_locked else "🔒"
            if cols[6].button(label, key=f"lock_{month}_{row.account_code}_{row.branch}"):
                if row.is_locked:
                    service.unlock(month, row.account_code, row.branch)
                else:
                    service.lock(month, row.account_code, row.branch)
                st.rerun()

        with st.expander("Locked periods"):
            keys = sorted(service.locked_keys())
            if keys:
                st.dataframe(pd.DataFrame(keys, columns=["month", "account_code", "branch"]), use_container_width=True)
            else:
                st.caption("No locked periods")

# ---------------------------------------------------------------- Management reports
elif menu == "Management reports":
    st.header("Management reports")
    month = month_picker()
    tab_branch, tab_market, tab_cash, tab_product = st.tabs(["Branch", "Market", "Cash flow", "Product P&L"])
    markets = [reports.ALL] + [m.value for m in Market if m != Market.NONE]
    branches = [reports.ALL] + [b.value for b in Branch]

    with tab_branch:
        market = st.selectbox("Market", markets, key="br_market")
        df = profit_table(service.branch_report(month, market))
        st.dataframe(df, use_container_width=True)
        if len(df) > 1:
            st.plotly_chart(px.bar(df.iloc[:-1], x="Name", y=["Revenue", "Expense", "Profit"], barmode="group"),
                            use_container_width=True)

    with tab_market:
        branch = st.selectbox("Branch", branches, key="mk_branch")
        df = profit_table(service.market_report(month, branch))
        st.dataframe(df, use_container_width=True)
        body = df.iloc[:-1]
        if not body.empty:
            colors = np.where(body["Profit"] >= 0, "seagreen", "crimson")
            fig = go.Figure(go.Bar(x=body["Name"], y=body["Margin %"], marker_color=colors))
            fig.update_layout(title="Margin by market")
            st.plotly_chart(fig, use_container_width=True)

    with tab_cash:
        c1, c2 = st.columns(2)
        branch = c1.selectbox("Branch", branches, key="cf_branch")
        market = c2.selectbox("Market", markets, key="cf_market")
        flow = pd.DataFrame([r.__dict__ for r in service.cash_flow(month, branch, market)])
        st.dataframe(flow, use_container_width=True)
        st.plotly_chart(px.line(flow, x="month", y="closing", markers=True), use_container_width=True)

    with tab_product:
        c1, c2, c3 = st.columns(3)
        branch = c1.selectbox("Branch", branches, key="pp_branch")
        market = c2.selectbox("Market", markets, key="pp_market")
        product = c3.selectbox("Product", [reports.ALL] + reports.products(service.transactions()), key="pp_product")
        df = pd.DataFrame([r.__dict__ for r in service.product_report(month, branch, market, product)])
        st.dataframe(df, use_container_width=True)
        if not df.empty:
            st.plotly_chart(px.pie(df, names="product", values="revenue", title="Revenue weight"),
                            use_container_width=True)

# ---------------------------------------------------------------- Datasheet
elif menu == "Datasheet":
    st.header("Order datasheet")
    if not settings.docstore_url:
        st.info("Set docstore_url in bookkeeping.yaml to sync orders")
        st.stop()

    def sync() -> DatasheetSync:
        return DatasheetSync(
            DocumentStore(settings.docstore_url, timeout=settings.docstore_timeout),
            fetch_limit=settings.orders_fetch_limit,
        )

    async def load():
        ds = sync()
        async with ds.store:
            return await ds.load()

    async def save_new(orders):
        ds = sync()
        async with ds.store:
            return await ds.save_new(orders)

    async def save(order):
        ds = sync()
        async with ds.store:
            return await ds.save(order)

    async def save_rates(rates):
        ds = sync()
        async with ds.store:
            await ds.save_rates(rates)

    if "orders" not in st.session_state or st.button("Reload"):
        try:
            st.session_state.orders, st.session_state.rates = run_async(load())
        except BookkeepingError as e:
            st.error(str(e))
            st.session_state.orders, st.session_state.rates = [], dict(settings.exchange_rates)

    orders = st.session_state.orders
    rates = st.session_state.rates

    with st.expander("Exchange rates"):
        cols = st.columns(len(rates))
        edited = {cur: cols[i].number_input(cur, value=float(v), key=f"rate_{cur}") for i, (cur, v) in enumerate(rates.items())}
        if st.button("Save rates"):
            try:
                run_async(save_rates(edited))
                st.session_state.rates = edited
                st.success("Rates saved")
            except BookkeepingError as e:
                st.error(str(e))

    upload = st.file_uploader("Import orders", type=["xlsx", "xls", "csv"], key="orders_upload")
    if upload is not None and st.button("Merge"):
        try:
            parsed = [order_from_row(r) for r in read_rows(upload.getvalue(), upload.name)]
            incoming = [p.get_or_else(None) for p in parsed if p.is_right()]
            result = merge_orders(orders, incoming)
            st.session_state.orders, saved = run_async(save_new(result.orders))
            st.success(f"{result.added} added, {result.updated} updated, {saved} saved")
        except BookkeepingError as e:
            st.error(str(e))

    c1, c2, c3, c4 = st.columns(4)
    period = c1.date_input("Period", value=(), key="ds_period")
    start, end = (period + (None, None))[:2] if isinstance(period, tuple) else (period, None)
    region = c2.selectbox("Region", [""] + sorted({o.region for o in orders if o.region}))
    product = c3.selectbox("Product", [""] + sorted({o.product for o in orders if o.product}))
    team = c4.selectbox("Team", [""] + sorted({o.team for o in orders if o.team}))
    search = st.text_input("Search order id, city, state, product")

    shown = filter_orders(orders, start, end, region, product, team, search)
    totals = datasheet_totals(shown, st.session_state.rates)
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Orders", totals.count)
    m2.metric("Total VND", vnd(totals.total_vnd))
    m3.metric("Reconciled VND", vnd(totals.reconciled_vnd))
    m4.metric("Goods (converted)", vnd(totals.goods_vnd))

    page = st.number_input("Page", min_value=1, value=1, step=1)
    page_rows, pages = paginate(shown, int(page))
    st.caption(f"Page {min(int(page), pages)} of {pages}")
    st.dataframe(pd.DataFrame([o.to_document() for o in page_rows]), use_container_width=True)

    with st.expander("Edit order"):
        by_id = {o.order_id: o for o in page_rows}
        if by_id:
            current = by_id[st.selectbox("Order", list(by_id), key="edit_order_choice")]
            with st.form("edit_order"):
                c1, c2, c3 = st.columns(3)
                delivery = c1.text_input("Delivery status", value=current.delivery_status)
                collection = c2.text_input("Collection status", value=current.collection_status)
                confirmed = c3.text_input("Accountant confirmed", value=current.accountant_confirmed)
                reconciled = c1.number_input("Reconciled VND", value=float(current.reconciled_vnd), step=1000.0)
                check = c2.text_input("Check result", value=current.check_result)
                tracking = c3.text_input("Tracking code", value=current.tracking_code)
                note = st.text_input("Note", value=current.note)
                if st.form_submit_button("Save order"):
                    updated = replace(
                        current,
                        delivery_status=delivery,
                        collection_status=collection,
                        accountant_confirmed=confirmed,
                        reconciled_vnd=reconciled,
                        check_result=check,
                        tracking_code=tracking,
                        note=note,
                    )
                    try:
                        saved = run_async(save(updated))
                        st.session_state.orders = [saved if o.order_id == saved.order_id else o for o in orders]
                        st.success(f"Order {saved.order_id} saved")
                    except BookkeepingError as e:
                        st.error(str(e))
