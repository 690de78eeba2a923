"""
Services layer for the newswire pipeline.

1. Data ingestion (data_ingestion/): source adapters, normalization, dedupe
2. Persistence (persistence.py): keyed upserts and the expiry sweep
3. Translation (translation.py): best-effort DeepL translation
4. Enrichment (enrichment.py): generative commentary per article
"""
