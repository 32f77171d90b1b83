"""Per-row processing: read, default, transform and validate every mapped field."""

import logging
from typing import Any, Dict, List, Optional

from .transformer import Clock, TransformEngine, get_field_value, is_empty
from .validator import RuleValidator
from ..models.mapping import FieldMapping
from ..models.record import ProcessedRecord

logger = logging.getLogger(__name__)


class RecordProcessor:
    """
    Turns one raw source row into a ProcessedRecord.

    For every field mapping, in order:
    1. Read the source value; substitute the default when it is empty
    2. Apply the transform
    3. Run validation rules until the first failure
    4. Enforce the required flag
    5. Write the value to the target field

    A failure in one field never stops the remaining fields. Processing
    is pure: the raw row is never modified and nothing is written anywhere.
    """

    def __init__(
        self,
        transform_engine: Optional[TransformEngine] = None,
        validator: Optional[RuleValidator] = None,
        clock: Optional[Clock] = None
    ):
        self.transform_engine = transform_engine or TransformEngine(clock=clock)
        self.validator = validator or RuleValidator()

    def process_record(
        self,
        raw: Dict[str, Any],
        mappings: List[FieldMapping],
        index: int
    ) -> ProcessedRecord:
        """
        Process one source row.

        Args:
            raw: Source row as read from the connector
            mappings: Field mappings of the target entity
            index: Zero-based position of the row in the run

        Returns:
            ProcessedRecord with transformed data, validation results and issues
        """
        record = ProcessedRecord(index=index, original_data=dict(raw))

        for mapping in mappings:
            try:
                value = self._process_field(raw, mapping, record)
            except Exception as e:
                logger.debug(f"Row {index}: field {mapping.target_field} failed: {e}")
                record.add_error(
                    f"Error processing field {mapping.target_field}: {e}",
                    field=mapping.target_field,
                )
                value = None
            record.transformed_data[mapping.target_field] = value

        return record

    def _process_field(self, raw: Dict[str, Any], mapping: FieldMapping, record: ProcessedRecord) -> Any:
        target = mapping.target_field

        value = get_field_value(raw, mapping.source_field) if mapping.source_field else None
        if is_empty(value) and mapping.default_value is not None:
            value = mapping.default_value

        value = self.transform_engine.apply(value, mapping.transform, raw)

        if mapping.validation:
            result = self.validator.validate(value, mapping.validation, target)
            record.validation_results.append(result)
            if not result.valid:
                if mapping.required:
                    record.add_error(
                        result.message or f"Validation failed for field {target}",
                        field=target,
                        value=value,
                    )
                else:
                    record.add_warning(
                        result.message or f"Validation warning for field {target}",
                        field=target,
                        value=value,
                    )

        if mapping.required and is_empty(value):
            record.add_error(f"Required field {target} is missing or empty", field=target, value=value)

        return value
