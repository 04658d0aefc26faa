"""Pipeline stages with run-log auditing (build_graph, audit_graph)."""
