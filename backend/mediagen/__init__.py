"""MediaGen: unified gateway to third-party AI media generation platforms."""
