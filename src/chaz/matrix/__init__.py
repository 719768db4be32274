"""Matrix transport glue for chaz."""
