"""Backend интернет-магазина косметики."""
