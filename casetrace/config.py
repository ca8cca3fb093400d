"""Application configuration."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from project root (before any os.getenv calls)
load_dotenv(BASE_DIR / ".env")

# Hosted backend (Supabase / PostgREST)
# Leave SUPABASE_URL or SUPABASE_KEY empty to run on empty in-memory sources
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
SUPABASE_ENABLED = bool(SUPABASE_URL and SUPABASE_KEY)

# Table names in the case-management schema
ACCUSED_TABLE = os.getenv("CASETRACE_ACCUSED_TABLE", "accused_details")
BAILER_TABLE = os.getenv("CASETRACE_BAILER_TABLE", "bailer_details")
CASE_TABLE = os.getenv("CASETRACE_CASE_TABLE", "fir_records")

# Source adapters (retry/backoff lives here, never in the resolver)
SOURCE_TIMEOUT = float(os.getenv("CASETRACE_SOURCE_TIMEOUT", "30"))            # Per-request HTTP timeout (s)
SOURCE_MAX_RETRIES = int(os.getenv("CASETRACE_SOURCE_MAX_RETRIES", "3"))       # Total attempts on transport errors
SOURCE_BACKOFF_BASE = float(os.getenv("CASETRACE_SOURCE_BACKOFF_BASE", "0.5"))  # Escalates: 0.5, 1.0, 2.0
SOURCE_PAGE_SIZE = int(os.getenv("CASETRACE_SOURCE_PAGE_SIZE", "1000"))         # PostgREST default max-rows
CASE_LOOKUP_BATCH = 200                                                         # Ids per `id=in.(...)` filter

# Enrichment
RESOLVE_CONCURRENCY = int(os.getenv("CASETRACE_RESOLVE_CONCURRENCY", "8"))  # Concurrent-query budget for fan-out
ENRICH_TIMEOUT = float(os.getenv("CASETRACE_ENRICH_TIMEOUT", "120"))        # Overall deadline per Enrich call (s)
ENRICH_STRATEGY = os.getenv("CASETRACE_ENRICH_STRATEGY", "indexed").strip().lower()  # indexed | fanout
ENRICH_STRATEGIES = ("indexed", "fanout")

# Debug trace mode: set CASETRACE_TRACE=1 to get per-record matching logs
TRACE_ENABLED = os.getenv("CASETRACE_TRACE", "").strip().lower() in ("1", "true", "yes")

# Case status groups for the reports dashboard rollup
CASE_STATUS_OPEN = ("open", "registered", "under_investigation")
CASE_STATUS_CLOSED = ("closed",)
CASE_STATUS_DISPOSED = ("disposed",)

# Frontend origins allowed by CORS
CORS_ORIGINS = [
    o.strip() for o in
    os.getenv("CASETRACE_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if o.strip()
]
