import os

import pandas as pd
import plotly.graph_objects as go
import requests
import streamlit as st
from fpdf import FPDF

API_URL = os.getenv("SCM_API_URL", "http://127.0.0.1:8000/v1")

# --- CONFIGURATION & DESIGN ---
st.set_page_config(page_title="SCM - OPERATIONS", layout="wide", page_icon="❄️")

st.markdown("""
    <style>
    .stMetric {
        background-color: #1e2130;
        padding: 15px;
        border-radius: 10px;
        border-left: 5px solid #00ffcc;
    }
    h1 {
        color: #00ffcc;
    }
    </style>
    """, unsafe_allow_html=True)


# --- CLIENT API ---
def api_get(path, token, **params):
    r = requests.get(
        f"{API_URL}{path}",
        params={k: v for k, v in params.items() if v is not None},
        headers={"Authorization": f"Bearer {token}"},
        timeout=10,
    )
    r.raise_for_status()
    return r.json()


def api_post(path, token, payload=None):
    r = requests.post(
        f"{API_URL}{path}",
        json=payload,
        headers={"Authorization": f"Bearer {token}"},
        timeout=10,
    )
    r.raise_for_status()
    return r.json()


def login(username, password):
    r = requests.post(f"{API_URL}/auth/login", json={"username": username, "password": password}, timeout=10)
    if r.status_code != 200:
        return None
    return r.json()


# --- PDF BON DE COMMANDE ---
def generer_pdf(po):
    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("Arial", 'B', 16)
    pdf.cell(200, 10, f"PURCHASE ORDER {po['po_number']}", ln=True, align='C')
    pdf.ln(10)
    pdf.set_font("Arial", size=12)
    pdf.cell(200, 10, f"Supplier : #{po['supplier_id']}", ln=True)
    pdf.cell(200, 10, f"Store : #{po['store_id']}", ln=True)
    pdf.cell(200, 10, f"Order date : {po['order_date']}", ln=True)
    pdf.cell(200, 10, f"Expected delivery : {po.get('expected_delivery_date') or '-'}", ln=True)
    pdf.ln(5)
    pdf.set_font("Arial", 'B', 11)
    pdf.cell(40, 8, "Item", border=1)
    pdf.cell(40, 8, "Quantity", border=1)
    pdf.cell(50, 8, "Unit price", border=1)
    pdf.cell(50, 8, "Total", border=1, ln=True)
    pdf.set_font("Arial", size=11)
    for ln in po.get("items", []):
        pdf.cell(40, 8, f"#{ln['item_id']}", border=1)
        pdf.cell(40, 8, f"{ln['quantity']} {ln['unit']}", border=1)
        pdf.cell(50, 8, f"{ln['unit_price']:,.2f}", border=1)
        pdf.cell(50, 8, f"{ln['total_amount']:,.2f}", border=1, ln=True)
    pdf.ln(5)
    pdf.set_font("Arial", 'B', 12)
    pdf.cell(200, 10, f"TOTAL : {po['total_amount']:,.2f}", ln=True)
    if po.get("notes"):
        pdf.set_font("Arial", 'I', 10)
        pdf.cell(200, 10, po["notes"], ln=True)
    return pdf.output(dest='S').encode('latin-1')


# --- CONNEXION ---
st.title("❄️ SCM OPERATIONS CENTER")

with st.sidebar:
    st.header("🔐 CONNEXION")
    if "token" not in st.session_state:
        username = st.text_input("Username", value="admin")
        password = st.text_input("Password", type="password")
        if st.button("Login"):
            res = login(username, password)
            if res is None:
                st.error("Invalid credentials")
            else:
                st.session_state["token"] = res["access_token"]
                st.session_state["user"] = res["user"]
                st.rerun()
    else:
        user = st.session_state["user"]
        st.write(f"👤 **{user['username']}** ({user['role']})")
        if st.button("Logout"):
            api_post("/auth/logout", st.session_state["token"])
            st.session_state.clear()
            st.rerun()

    st.divider()
    st.header("⚙️ PARAMÈTRES")
    expiry_days = st.slider("Horizon péremption (jours)", 0, 30, 7)

if "token" not in st.session_state:
    st.info("Connectez-vous pour afficher le tableau de bord.")
    st.stop()

token = st.session_state["token"]

# --- KPIs ---
data = api_get("/reports/dashboard", token)
gp = data["gross_profit"]

c1, c2, c3, c4 = st.columns(4)
c1.metric("VALEUR DU STOCK", f"{data['total_inventory_value']:,.0f}")
c2.metric("LOTS EN ALERTE", data["low_stock_items"])
c3.metric("PO À APPROUVER", data["pending_po_approvals"])
c4.metric(f"MARGE ({gp['period']})", f"{gp['margin']} %", f"{gp['gross_profit']:,.0f}")

# --- SOUS LE STOCK DE SÉCURITÉ ---
st.markdown("---")
st.markdown(f"### 📦 Sous le stock de sécurité ({data['items_below_safety_stock_count']})")
below = pd.DataFrame(data["items_below_safety_stock"])
if below.empty:
    st.success("✅ STOCK OPTIMAL")
else:
    fig = go.Figure()
    fig.add_trace(go.Bar(x=below["sku"], y=below["current_stock"], name="Stock actuel", marker_color="#00ffcc"))
    fig.add_trace(go.Bar(x=below["sku"], y=below["safety_stock"], name="Stock de sécurité", marker_color="#ff0066"))
    fig.update_layout(
        template="plotly_dark",
        barmode="group",
        height=350,
        margin=dict(l=20, r=20, t=30, b=20),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
    )
    st.plotly_chart(fig, use_container_width=True)

    if st.button("🚚 Lancer le réassort automatique"):
        created = api_post("/stock-requests/auto-replenish", token)
        st.success(f"{len(created)} demande(s) de stock créée(s)")

# --- MARGE BRUTE ---
st.markdown("---")
st.markdown("### 💰 Marge brute par jour")
profit = api_get("/reports/gross-profit", token)
by_date = pd.DataFrame(profit["by_date"])
if by_date.empty:
    st.write("Aucune vente sur la période.")
else:
    by_date = by_date.sort_values("date")
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=by_date["date"], y=by_date["revenue"], name="CA", line=dict(color='#00ffcc', width=3)))
    fig.add_trace(go.Scatter(x=by_date["date"], y=by_date["gross_profit"], name="Marge", line=dict(dash='dot', color='#ff0066', width=3)))
    fig.update_layout(template="plotly_dark", height=350, margin=dict(l=20, r=20, t=30, b=20))
    st.plotly_chart(fig, use_container_width=True)

# --- PO EN ATTENTE ---
st.markdown("---")
st.markdown("### 🧾 Bons de commande en attente d'approbation")
pending = api_get("/purchase-orders/pending-approvals", token)
if not pending:
    st.write("Aucun bon de commande en attente.")
for po in pending:
    with st.container():
        a, b = st.columns([3, 1])
        a.write(f"**{po['po_number']}** | fournisseur #{po['supplier_id']} | total {po['total_amount']:,.2f}")
        b.download_button(
            label="📄 PDF",
            data=generer_pdf(po),
            file_name=f"{po['po_number']}.pdf",
            mime="application/pdf",
            key=f"pdf_{po['id']}",
        )

# --- TEMPÉRATURE & PÉREMPTION ---
st.markdown("---")
t1, t2 = st.columns(2)
with t1:
    st.markdown("### 🌡️ Alertes température")
    alerts = pd.DataFrame(api_get("/temperature/alerts", token))
    if alerts.empty:
        st.success("Toutes les températures sont dans la plage.")
    else:
        st.dataframe(alerts[["batch_no", "item_name", "temperature", "min_temperature", "max_temperature"]])
with t2:
    st.markdown("### ⏳ Péremptions proches")
    expiring = pd.DataFrame(api_get("/reports/expired-items", token, days_threshold=expiry_days))
    if expiring.empty:
        st.success("Aucun lot proche de la péremption.")
    else:
        st.dataframe(expiring[["batch_no", "item_name", "expiry_date", "days_until_expiry", "status"]])

st.divider()
