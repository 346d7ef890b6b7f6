"""
index_fields.py

Field names of the gene indexes. Other tooling (index creation, evaluation) depends on
these names, do not change them.
"""


class SynonymIndexFieldNames:
    # "<gene id>__<synonym priority>"
    ID_FIELD = "entry_id"
    ORIGINAL_NAME = "original_name"
    LOOKUP_SYN_FIELD = "indexed_syn"
    VARIANT_NAME = "variant_name"
    STEMMED_NORMALIZED_NAME = "stemmed_normalized_name"
    TAX_ID_FIELD = "tax_id"
    PRIORITY = "priority"
    FILTERED = "filtered"

    TEXT_FIELDS = (ORIGINAL_NAME, LOOKUP_SYN_FIELD, VARIANT_NAME, STEMMED_NORMALIZED_NAME)
    KEYWORD_FIELDS = (ID_FIELD, TAX_ID_FIELD, PRIORITY, FILTERED)


class ContextIndexFieldNames:
    ID_FIELD = "id"
    SUMMARY = "summary"
    GENERIF = "generif"
    INTERACTION = "interaction"
    CONTEXT = "context"

    TEXT_FIELDS = (SUMMARY, GENERIF, INTERACTION, CONTEXT)
    KEYWORD_FIELDS = (ID_FIELD,)


NAME_PRIO_DELIMITER = "__"
