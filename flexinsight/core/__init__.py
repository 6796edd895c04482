"""Cross-cutting primitives: error taxonomy and network reachability."""
