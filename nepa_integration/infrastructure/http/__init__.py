"""HTTP helpers shared by the executor and outbound notifiers."""
