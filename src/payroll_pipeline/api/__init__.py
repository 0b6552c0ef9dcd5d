"""HTTP API for triggering and polling payroll runs."""
