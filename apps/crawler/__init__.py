"""
Crawler App - Resumable SteamID Crawler

Responsibilities:
- Enumerate account ids from a persisted cursor and derive SteamID64s
- Query ISteamUser/GetPlayerSummaries in batches of 100 with per-call timeouts
- Normalize profiles (location enrichment, best-effort coercion)
- Persist profiles in write groups of 25 with row-counter rollback on failure
- Rotate API keys between runs; pace batches; stop at END_ACCOUNT_ID

Hosts:
- python -m apps.crawler (APScheduler daemon or RUN_ONCE)
- apps.crawler.handler.handler (serverless invocation)
"""
