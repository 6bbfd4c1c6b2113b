"""Media item types, tag access and MusicBrainz identifier resolution."""
