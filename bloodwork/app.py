import os
import json
import logging

import pandas as pd
import streamlit as st
from dotenv import load_dotenv

load_dotenv()
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

from bloodwork.constants import UPLOAD_FIELD, UPLOAD_PREVIEW_CHARS
from bloodwork.ingestion.ingest_reports import ingest_pdf, stored_upload_name, text_preview
from bloodwork.ingestion.utils_pdf import DecodeError
from bloodwork.tools.extracts_store import ExtractStore, ExtractStoreError, row_records
from bloodwork.tools.spreadsheet import build_workbook, xlsx_filename, XLSX_MIMETYPE

logger = logging.getLogger(__name__)

st.set_page_config(page_title="PDF to Excel Extractor", page_icon="📄", layout="wide")


@st.cache_resource
def get_store() -> ExtractStore:
    return ExtractStore()


store = get_store()

st.sidebar.title("Settings")
st.sidebar.markdown(f"**Extracts table:** `{store.table_path}`")
st.sidebar.markdown("Values are read heuristically from the PDF text and are not validated.")

st.title("📄 PDF to Excel Extractor")
st.caption("Upload a blood report PDF, review the extracted tests and download them as a spreadsheet.")

tab_upload, tab_list, tab_db = st.tabs(["Upload", "Extracted Reports", "Database Viewer"])

with tab_upload:
    st.subheader("Upload PDF Blood Report")
    uploaded = st.file_uploader("Select a PDF file", type=["pdf"], key=UPLOAD_FIELD)
    if uploaded is not None and st.button("Upload & Extract", type="primary"):
        stored_name = stored_upload_name()
        with st.spinner("Extracting..."):
            try:
                res = ingest_pdf(store, uploaded.getvalue(), stored_name, uploaded.name)
            except DecodeError as e:
                st.error(f"Failed to process PDF: {e}")
            except ExtractStoreError:
                st.error("Failed to save to database")
            else:
                st.success(f"PDF processed successfully: {len(res['records'])} rows (id {res['id']})")
                if res["records"]:
                    st.dataframe(pd.DataFrame(res["records"]), use_container_width=True, hide_index=True)
                with st.expander("Extracted text preview"):
                    st.text(text_preview(res["extracted_text"]))

with tab_list:
    st.subheader("Extracted Reports")
    try:
        extracts = store.list_extracts()
        rows = store.full_rows()
    except ExtractStoreError:
        extracts, rows = [], {}
        st.error("Failed to fetch extracts")
    if not extracts:
        st.info("No extracts yet. Upload a PDF to get started.")
    for ex in extracts:
        cols = st.columns([4, 3, 2, 2])
        cols[0].markdown(f"**{ex['original_filename']}**")
        cols[1].markdown(f"{ex['created_at']} · {ex['text_length']} chars")
        row = rows.get(ex["id"])
        if row is not None:
            try:
                content = build_workbook(row_records(row), row.get("extracted_text"))
            except Exception as e:
                logger.error(f"Error generating Excel for extract {ex['id']}: {e}")
                cols[2].error("Excel unavailable")
            else:
                cols[2].download_button(
                    "Download Excel",
                    data=content,
                    file_name=xlsx_filename(ex["original_filename"]),
                    mime=XLSX_MIMETYPE,
                    key=f"download-{ex['id']}",
                )
        if cols[3].button("Delete", key=f"delete-{ex['id']}"):
            try:
                store.delete(ex["id"])
            except ExtractStoreError:
                st.error("Failed to delete extract")
            else:
                st.rerun()

with tab_db:
    st.subheader("📊 Database Viewer")
    try:
        info = store.database_info(preview_chars=UPLOAD_PREVIEW_CHARS)
    except ExtractStoreError:
        info = {"totalRecords": 0, "records": []}
        st.error("Failed to fetch database info")
    st.metric("Total records", info["totalRecords"])
    for rec in info["records"]:
        with st.expander(f"#{rec['id']} · {rec['original_filename']} · {rec['created_at']}"):
            st.markdown(f"Stored as `{rec['filename']}` · text {rec['text_length']} chars · data {rec['data_length']} chars")
            st.text(rec["text_preview"])
            preview = rec.get("excelDataPreview")
            if preview and "error" not in preview:
                st.markdown(f"Rows: {preview['rowCount']} · Columns: {', '.join(preview['columns'])}")
                if preview["firstRow"] is not None:
                    st.code(json.dumps(preview["firstRow"], indent=2), language="json")
            elif preview:
                st.warning(preview["error"])
