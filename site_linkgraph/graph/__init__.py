"""
Link-graph build phases, in execution order.

Modules
-------
candidates : build_candidate_pools() — pruned scoring of rec / alt candidates.
diversity  : DiversityCounter + diversity_ok() — per-list category/band/brand caps.
selector   : seed_popularity() + select_recommendations() +
             rotate_recommendations() + select_alternatives().
rescue     : rescue_underlinked() — donor insert / swap toward rescue_floor.
explore    : allocate_explore_slots() — slot allocation + top-up to min_inbound.
gate       : run_invariant_gate() + audit_neighbors() — hard invariant checks.
builder    : build_site_graph() — runs every phase, returns SiteGraph.
writer     : write_site_graph() + load_site_graph(): staged JSON artifacts + manifest.
"""
