"""Storage-side RAID components: codec, policies, jobs, placement, recovery."""
