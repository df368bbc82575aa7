"""Stand-up report pipeline: snapshot, dedupe, lease, composition and delivery."""
