"""
Empty Homes Hub — Voids Dashboard Analytics

Analytics backend turning loosely-structured survey submissions and
historic demand records from the document store into consistent,
dashboard-ready tables, charts and map layers.

Pipeline:
    loaders (gateway + cache) -> transforms (normalize) -> filters
    -> kpis (aggregate) -> dashboard (get_* entry points)
    -> charts / exports / map_layers (view adapters)

To point at a live store:
    Build a FirestoreGateway with loaders.build_firestore_gateway(project)
    and hand it to a RecordCache; every downstream function works on the
    normalized entities, so nothing else changes.

To add a filter dimension:
    Append a Facet to filters.SURVEY_FACETS or filters.DEMAND_FACETS. Facets
    are AND-combined, so a new one composes with the existing ones.
"""
