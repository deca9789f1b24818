"""Stock Picker Madness: friend-group stock picking competitions."""
