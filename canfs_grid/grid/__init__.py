"""Editable grid: draft buffer, sort/filter controller, column layout, view model."""
