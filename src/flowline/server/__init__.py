"""HTTP surface: event ingress, introspection and queue control."""
