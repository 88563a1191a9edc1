"""Storyweave — story slideshow document model, media resolution and playback."""
