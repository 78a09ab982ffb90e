"""One detection cycle and the sequential loop that drives it."""
