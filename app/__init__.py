"""HTTP application package for island fleet rooms."""
