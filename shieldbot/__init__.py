"""Lost Temple shield drop timer for Discord."""
