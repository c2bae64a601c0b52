"""HTTP front end of the order relay."""
