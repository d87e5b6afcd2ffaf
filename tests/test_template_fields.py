import pytest

from fieldsign import models
from fieldsign.errors import ConflictError, NotFoundError, ValidationError
from fieldsign.schemas import FieldPatch, FieldSpec
from fieldsign.services import documents
from fieldsign.services.template_fields import template_field_store

from .helpers import field_spec


class TestCreateField:
    def test_defaults_metadata_for_type(self, db, make_template):
        template = make_template()
        field = template_field_store.create_field(db, template.id, field_spec(field_type="signature"))
        assert field.id is not None
        assert field.field_metadata == {"include_name": True, "include_date": True}
        assert field.page == 1

    def test_accepts_pydantic_spec(self, db, make_template):
        template = make_template()
        spec = FieldSpec(**field_spec(field_type="checkbox", width=0.03, height=0.03, metadata={"checkbox_size": 40}))
        field = template_field_store.create_field(db, template.id, spec)
        assert field.field_type == "checkbox"
        assert field.field_metadata["checkbox_size"] == 40

    def test_unknown_scalar_metadata_is_kept(self, db, make_template):
        template = make_template()
        field = template_field_store.create_field(
            db, template.id, field_spec(metadata={"font_size": 14, "color": "navy"})
        )
        assert field.field_metadata["color"] == "navy"
        assert field.field_metadata["font_size"] == 14

    def test_nested_metadata_rejected(self, db, make_template):
        template = make_template()
        with pytest.raises(ValidationError):
            template_field_store.create_field(db, template.id, field_spec(metadata={"style": {"bold": True}}))

    def test_checkbox_size_out_of_range(self, db, make_template):
        template = make_template()
        with pytest.raises(ValidationError):
            template_field_store.create_field(
                db, template.id, field_spec(field_type="checkbox", metadata={"checkbox_size": 0})
            )

    def test_unknown_type_rejected(self, db, make_template):
        template = make_template()
        with pytest.raises(ValidationError, match="unknown field type"):
            template_field_store.create_field(db, template.id, field_spec(field_type="radio"))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"x_position": -0.1},
            {"width": 0},
            {"height": -0.2},
            {"x_position": 0.8, "width": 0.3},
            {"y_position": 0.99, "height": 0.05},
            {"page": 0},
            {"x_position": float("nan")},
            {"width": float("inf")},
        ],
    )
    def test_bad_placement_rejected(self, db, make_template, overrides):
        template = make_template()
        with pytest.raises(ValidationError):
            template_field_store.create_field(db, template.id, field_spec(**overrides))
        assert db.query(models.TemplateField).count() == 0

    def test_non_finite_coordinate_named(self, db, make_template):
        template = make_template()
        with pytest.raises(ValidationError, match="x_position must be a finite number"):
            template_field_store.create_field(db, template.id, field_spec(x_position=float("nan")))

    def test_non_finite_move_rejected(self, db, make_template, make_template_field):
        field = make_template_field(make_template())
        with pytest.raises(ValidationError):
            template_field_store.update_field(db, field.id, FieldPatch(y_position=float("nan")))

    def test_field_touching_page_edge_allowed(self, db, make_template):
        template = make_template()
        field = template_field_store.create_field(db, template.id, field_spec(x_position=0.7, width=0.3))
        assert field.x_position + field.width == pytest.approx(1.0)

    def test_missing_template(self, db):
        with pytest.raises(NotFoundError):
            template_field_store.create_field(db, 999, field_spec())


class TestUpdateField:
    def test_move_and_resize(self, db, make_template, make_template_field):
        field = make_template_field(make_template())
        updated = template_field_store.update_field(
            db, field.id, FieldPatch(x_position=0.5, y_position=0.6, width=0.2)
        )
        assert (updated.x_position, updated.y_position, updated.width) == (0.5, 0.6, 0.2)
        assert updated.height == 0.05

    def test_invalid_move_leaves_field_unchanged(self, db, make_template, make_template_field):
        field = make_template_field(make_template())
        with pytest.raises(ValidationError) as exc_info:
            template_field_store.update_field(db, field.id, {"x_position": 0.9})
        assert exc_info.value.field_id == field.id
        db.rollback()
        db.refresh(field)
        assert field.x_position == 0.1

    def test_type_change_resets_metadata(self, db, make_template, make_template_field):
        field = make_template_field(make_template(), metadata={"font_size": 18})
        updated = template_field_store.update_field(db, field.id, FieldPatch(field_type="date"))
        assert updated.field_type == "date"
        assert updated.field_metadata == {"date_format": "%m/%d/%Y", "font_size": 12}

    def test_missing_field(self, db):
        with pytest.raises(NotFoundError):
            template_field_store.update_field(db, 42, FieldPatch(width=0.1))


class TestDeleteField:
    def test_delete_unreferenced(self, db, make_template, make_template_field):
        field = make_template_field(make_template())
        template_field_store.delete_field(db, field.id)
        assert db.get(models.TemplateField, field.id) is None

    def test_refused_while_active_document_uses_it(self, db, make_template, make_template_field):
        template = make_template()
        field = make_template_field(template)
        documents.create_document(db, "Lease", template_id=template.id)

        with pytest.raises(ConflictError):
            template_field_store.delete_field(db, field.id)
        assert db.get(models.TemplateField, field.id) is not None

    def test_archived_document_keeps_dangling_snapshot(self, db, make_template, make_template_field):
        template = make_template()
        field = make_template_field(template)
        document = documents.create_document(db, "Lease", template_id=template.id)
        document.status = models.DocumentStatus.ARCHIVED.value
        db.commit()

        template_field_store.delete_field(db, field.id)

        snapshot = db.query(models.DocumentField).filter_by(document_id=document.id).one()
        assert snapshot.field_id == field.id
        assert snapshot.x_position == 0.1


class TestListFields:
    def test_creation_order(self, db, make_template, make_template_field):
        template = make_template()
        first = make_template_field(template, field_name="A")
        second = make_template_field(template, field_name="B")
        assert [f.id for f in template_field_store.list_fields(db, template.id)] == [first.id, second.id]

    def test_other_templates_excluded(self, db, make_template, make_template_field):
        mine, other = make_template("mine"), make_template("other")
        make_template_field(other)
        assert template_field_store.list_fields(db, mine.id) == []
