"""Queue consumers: article classification and source aggregation."""
