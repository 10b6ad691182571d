"""Sale persistence: repository contract plus in-memory and Supabase backends."""
