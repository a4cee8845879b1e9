"""Constants for Linkding synchronization."""

DEFAULT_URL_FIELD = "url"
DEFAULT_TITLE_FIELD = "title"
DEFAULT_TAGS_FIELD = "tags"
DEFAULT_DESCRIPTION_FIELD = "description"
DEFAULT_NOTES_FIELD = "notes"
DEFAULT_ID_FIELD = "linkding_id"

TAG_SEPARATOR = ","
