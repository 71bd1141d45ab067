"""
Form tree: compound and leaf nodes, submission and validation.

A Form is either compound (it holds named children) or a leaf (it holds
one value). Leaves carry a FieldDescriptor built by the type registry.
Each node stores its model data; a compound node's data is always
gathered from its children.

Submission is one-way: ``submit`` pushes raw view values down the tree,
runs them through each leaf's reverse transformers, validates the
resulting model data once from the submitted node and attaches every
violation to the node it addresses. A form instance submits at most once.

Lifecycle events (see ``formgen.core.events``) are dispatched on each node
to its own listeners, then to the factory's.
"""

import logging
import weakref
from collections.abc import Callable, Iterator, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from formgen.core.data_sources import DataProvider
from formgen.core.errors import ErrorBubblingStrategy, ErrorLevel, ErrorList, FormError
from formgen.core.events import EventDispatcher, EventSubscriber, FormEvent, FormEvents, Listener
from formgen.core.field import FieldDescriptor
from formgen.core.mapper import FormDataMapper
from formgen.core.rendering import DefaultTheme, FormView, Renderer, Theme
from formgen.core.security import CsrfTokenManager
from formgen.core.transformers import TransformationError, TransformerChain
from formgen.core.types import TypeRegistry, create_default_registry
from formgen.core.utils import humanize
from formgen.validation import DEFAULT_GROUP, Constraint, Violation, parse_rules
from formgen.validation.validator import Validator

logger = logging.getLogger(__name__)

_HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}


class FormState(str, Enum):
    """Submission state of a form node."""

    READY = "ready"
    SUBMITTED = "submitted"


class FormStateError(RuntimeError):
    """Raised for operations not allowed in the form's current state."""


class FormConfig(BaseModel):
    """Configuration of a form node."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Form name; also the request key")
    type: str = Field(default="form", description="Type tag of the node")
    compound: bool = Field(default=True, description="Whether the node holds children")
    method: str = Field(default="POST", description="HTTP method used to submit")
    action: str | None = Field(default=None, description="Submission URL")
    attr: dict[str, Any] = Field(default_factory=dict, description="HTML attributes")
    csrf_protection: bool = Field(default=False, description="Embed and check a CSRF token")
    csrf_field_name: str = Field(default="_token", description="Name of the hidden token field")
    csrf_token_id: str | None = Field(default=None, description="Token id; defaults to the name")
    error_bubbling: ErrorBubblingStrategy = Field(
        default_factory=ErrorBubblingStrategy,
        description="How child errors propagate into this node's error list",
    )
    validation_groups: list[str] = Field(
        default_factory=lambda: [DEFAULT_GROUP],
        description="Groups whose constraints run on submit",
    )
    messages: dict[str, str] = Field(
        default_factory=dict,
        description='Message overrides keyed by "<path>.<rule>" or "<path>"',
    )

    @field_validator("method")
    @classmethod
    def validate_method(cls, value: str) -> str:
        method = value.upper()
        if method not in _HTTP_METHODS:
            raise ValueError(f"Unsupported form method '{value}'")
        return method

    @property
    def token_id(self) -> str:
        return self.csrf_token_id or self.name


class FormFactory:
    """Build context shared by every node of one form-generation call.

    Args:
        registry: Field type registry; the built-in types by default.
        translator: Optional translator for labels and messages.
        csrf_manager: Required when a form enables CSRF protection.
        data_providers: Named providers usable by choice data sources.
        theme: Theme used when creating views.
        messages: Default validation message overrides.
        events: Dispatcher whose listeners see the events of every node
            built by this factory.
    """

    def __init__(
        self,
        registry: TypeRegistry | None = None,
        translator: Any = None,
        csrf_manager: CsrfTokenManager | None = None,
        data_providers: Mapping[str, DataProvider] | None = None,
        theme: Theme | None = None,
        messages: Mapping[str, str] | None = None,
        events: EventDispatcher | None = None,
    ):
        self.registry = registry or create_default_registry()
        self.translator = translator
        self.csrf_manager = csrf_manager
        self.data_providers: dict[str, DataProvider] = dict(data_providers or {})
        self.theme = theme or DefaultTheme()
        self.messages = dict(messages or {})
        self.events = events or EventDispatcher()

    def add_provider(self, name: str, provider: DataProvider) -> "FormFactory":
        self.data_providers[name] = provider
        return self

    def get_provider(self, name: str) -> DataProvider:
        provider = self.data_providers.get(name)
        if provider is None:
            raise LookupError(f"Data provider '{name}' is not registered")
        return provider

    def create(self, name: str = "form", data: Any = None, **config: Any) -> "Form":
        """Create a root compound form."""
        form = Form(name, FormConfig(name=name, **config), factory=self)
        if data is not None:
            form.set_data(data)
        return form

    def create_field(self, name: str, type_name: str, options: dict[str, Any] | None = None) -> FieldDescriptor:
        return self.registry.build_field(name, type_name, options, context=self)

    def translate(self, text: str | None) -> str | None:
        if text is None or self.translator is None:
            return text
        return self.translator.trans(text)


class Form:
    """A node of a form tree.

    Args:
        name: Node name, unique among its siblings.
        config: Node configuration; derived from the descriptor when omitted.
        factory: Shared build context; a default one when omitted.
        descriptor: Field descriptor for nodes created from a type.
    """

    def __init__(
        self,
        name: str,
        config: FormConfig | None = None,
        factory: FormFactory | None = None,
        descriptor: FieldDescriptor | None = None,
    ):
        self.name = name
        self.factory = factory or FormFactory()
        self.descriptor = descriptor
        self.config = config or FormConfig(
            name=name,
            type=descriptor.type if descriptor else "form",
            compound=descriptor.compound if descriptor else True,
        )
        self.state = FormState.READY
        self.errors = ErrorList()
        self.events = EventDispatcher()

        self._parent_ref: weakref.ref | None = None
        self._children: dict[str, Form] = {}
        self._constraints: list[Constraint] = []
        self._mapper = FormDataMapper()
        self._data: Any = None
        self._submitted_value: Any = None
        self._transformation_failed = False
        self._clicked = False

        registry = self.factory.registry
        type_name = descriptor.type if descriptor else None
        self.is_collection = bool(type_name) and registry.is_type_of(type_name, "collection")
        self.is_button = bool(type_name) and registry.is_type_of(type_name, "button")
        self.is_csrf_field = False

        if self.config.csrf_protection:
            self._add_csrf_field()
        if descriptor is not None and descriptor.options.get("data") is not None:
            self.set_data(descriptor.options["data"])

    def __repr__(self) -> str:
        kind = "compound" if self.is_compound else "leaf"
        return f"<Form {self.name!r} {kind} type={self.type!r} state={self.state.value}>"

    # -----------------------------------------------------------------
    # Tree structure
    # -----------------------------------------------------------------

    @property
    def type(self) -> str:
        return self.config.type

    @property
    def is_compound(self) -> bool:
        return self.config.compound

    @property
    def mapped(self) -> bool:
        return self.descriptor.mapped if self.descriptor is not None else True

    @property
    def property_path(self) -> str:
        if self.descriptor is not None and self.descriptor.options.get("property_path"):
            return self.descriptor.options["property_path"]
        return self.name

    @property
    def label(self) -> str:
        if self.descriptor is not None and self.descriptor.label:
            return self.descriptor.label
        return humanize(self.name)

    @property
    def parent(self) -> "Form | None":
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def root(self) -> "Form":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def full_path(self) -> str:
        """Dotted path from the root (the root itself has an empty path)."""
        names = []
        node = self
        while node.parent is not None:
            names.append(node.name)
            node = node.parent
        return ".".join(reversed(names))

    @property
    def chain(self) -> TransformerChain:
        return self.descriptor.transformer_chain if self.descriptor is not None else TransformerChain()

    @property
    def children(self) -> dict[str, "Form"]:
        return dict(self._children)

    def _assert_ready(self, action: str) -> None:
        if self.state is FormState.SUBMITTED:
            raise FormStateError(f"Cannot {action} form '{self.name}' after it has been submitted")

    def add(self, child: "str | Form", type_name: str = "text", options: dict[str, Any] | None = None) -> "Form":
        """Add a child built from a type tag, or an existing Form.

        Returns:
            This form, for chaining.

        Raises:
            FormStateError: If the form is a leaf or was already submitted.
            OptionsError: If the options are invalid for the type.
        """
        self._assert_ready("add a child to")
        if not self.is_compound:
            raise FormStateError(f"Cannot add children to leaf field '{self.name}'")

        if isinstance(child, Form):
            form = child
        else:
            descriptor = self.factory.create_field(child, type_name, options)
            form = Form(child, factory=self.factory, descriptor=descriptor)

        form._parent_ref = weakref.ref(self)
        self._children[form.name] = form
        if isinstance(self._data, Mapping) and form.mapped and form.name in self._data:
            form.set_data(self._data[form.name])
        return self

    def add_text(self, name: str, **options: Any) -> "Form":
        return self.add(name, "text", options)

    def add_email(self, name: str, **options: Any) -> "Form":
        return self.add(name, "email", options)

    def add_password(self, name: str, **options: Any) -> "Form":
        return self.add(name, "password", options)

    def add_textarea(self, name: str, **options: Any) -> "Form":
        return self.add(name, "textarea", options)

    def add_number(self, name: str, **options: Any) -> "Form":
        return self.add(name, "number", options)

    def add_integer(self, name: str, **options: Any) -> "Form":
        return self.add(name, "integer", options)

    def add_date(self, name: str, **options: Any) -> "Form":
        return self.add(name, "date", options)

    def add_select(self, name: str, **options: Any) -> "Form":
        return self.add(name, "select", options)

    def add_radio(self, name: str, **options: Any) -> "Form":
        return self.add(name, "radio", options)

    def add_checkbox(self, name: str, **options: Any) -> "Form":
        return self.add(name, "checkbox", options)

    def add_hidden(self, name: str, **options: Any) -> "Form":
        return self.add(name, "hidden", options)

    def add_submit(self, name: str = "submit", **options: Any) -> "Form":
        return self.add(name, "submit", options)

    def add_collection(
        self,
        name: str,
        entry_type: str = "text",
        entry_builder: Callable[["Form"], Any] | None = None,
        **options: Any,
    ) -> "Form":
        """Add a collection child with one entry per submitted item.

        Args:
            name: Collection name.
            entry_type: Type tag of each entry.
            entry_builder: Called with each new compound entry to add its
                children; overrides ``entry_type``.
            **options: Further collection options (min, max, allow_add, ...).
        """
        return self.add(name, "collection", {
            "entry_type": entry_type,
            "entry_builder": entry_builder,
            **options,
        })

    def _add_csrf_field(self) -> None:
        if self.factory.csrf_manager is None:
            raise ValueError(f"Form '{self.name}' enables CSRF protection but no CSRF manager is configured")
        field_name = self.config.csrf_field_name
        self.add(field_name, "hidden", {"mapped": False})
        self._children[field_name].is_csrf_field = True

    def remove(self, name: str) -> "Form":
        self._assert_ready("remove a child from")
        child = self._children.pop(name, None)
        if child is not None:
            child._parent_ref = None
        return self

    def get(self, name: str) -> "Form":
        try:
            return self._children[name]
        except KeyError:
            raise KeyError(f"Form '{self.name}' has no child named '{name}'") from None

    def has(self, name: str) -> bool:
        return name in self._children

    def __getitem__(self, name: str) -> "Form":
        return self.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._children

    def __iter__(self) -> Iterator["Form"]:
        return iter(list(self._children.values()))

    def __len__(self) -> int:
        return len(self._children)

    def add_constraint(self, constraint: Constraint | str) -> "Form":
        """Attach a form-level constraint, e.g. a Callback for cross-field checks."""
        self._constraints.extend(parse_rules(constraint))
        return self

    # -----------------------------------------------------------------
    # Events
    # -----------------------------------------------------------------

    def add_event_listener(self, event: FormEvents | str, listener: Listener, priority: int = 0) -> "Form":
        self.events.add_listener(event, listener, priority)
        return self

    def add_event_subscriber(self, subscriber: EventSubscriber) -> "Form":
        self.events.add_subscriber(subscriber)
        return self

    def _dispatch(self, event: FormEvents, data: Any, context: dict[str, Any] | None = None) -> FormEvent:
        # Node listeners run before the factory-wide ones.
        payload = FormEvent(self, data, context)
        self.events.dispatch(event, payload)
        self.factory.events.dispatch(event, payload)
        return payload

    # -----------------------------------------------------------------
    # Data
    # -----------------------------------------------------------------

    def set_data(self, data: Any) -> "Form":
        """Pre-populate the node with model data (edit mode).

        Compound nodes accept a mapping or an object; its values are mapped
        on to the children. PRE_SET_DATA listeners may replace ``data``.

        Raises:
            FormStateError: If the form was already submitted.
        """
        self._assert_ready("set data on")
        data = self._dispatch(FormEvents.PRE_SET_DATA, data).data
        self._bind(data)
        self._dispatch(FormEvents.POST_SET_DATA, data)
        return self

    def _bind(self, data: Any) -> None:
        if self.is_collection:
            self._set_entries(data, submitting=False)
        elif self.is_compound:
            self._data = data
            if isinstance(data, Mapping):
                self._mapper.map_data_to_forms(data, self)
            elif data is not None:
                self._mapper.map_object_to_forms(data, self)
        else:
            self._data = data

    def get_data(self) -> Any:
        """Model data; gathered from the children for compound nodes."""
        if self.is_collection:
            return [child.get_data() for child in self if child.mapped]
        if self.is_compound:
            return self._mapper.map_forms_to_data(self)
        return self._data

    def get_view_data(self) -> Any:
        """Display value: model data passed through the transformers.

        After a failed reverse transformation the raw submitted value is
        returned, so the user sees what they typed.
        """
        if self.is_collection:
            return [child.get_view_data() for child in self]
        if self.is_compound:
            return {child.name: child.get_view_data() for child in self}
        if self._transformation_failed:
            return self._submitted_value
        try:
            return self.chain.transform(self._data)
        except TransformationError as e:
            logger.warning("Could not transform '%s' for display: %s", self.full_path or self.name, e)
            return self._data

    def get_object(self, obj: Any) -> Any:
        """Write the form's model data onto the attributes of ``obj``."""
        return self._mapper.map_forms_to_object(self, obj)

    def load_from_provider(self, provider: DataProvider | str, record_id: Any) -> bool:
        """Pre-populate from a provider record.

        Returns:
            False if the provider has no record with that id.
        """
        if isinstance(provider, str):
            provider = self.factory.get_provider(provider)
        record = provider.find_by_id(record_id)
        if record is None:
            logger.info("No record '%s' to load into form '%s'", record_id, self.name)
            return False
        self._assert_ready("load data into")
        self._data = record
        self._mapper.map_data_to_forms_with_property_path(record, self)
        return True

    # -----------------------------------------------------------------
    # Collections
    # -----------------------------------------------------------------

    def _build_entry(self, name: str) -> "Form":
        options = self.descriptor.options
        if options["entry_builder"] is not None:
            entry = Form(name, factory=self.factory, descriptor=self.factory.create_field(name, "form"))
            options["entry_builder"](entry)
        else:
            descriptor = self.factory.create_field(name, options["entry_type"], options["entry_options"])
            entry = Form(name, factory=self.factory, descriptor=descriptor)
        entry._parent_ref = weakref.ref(self)
        self._children[name] = entry
        return entry

    def _set_entries(self, items: Any, submitting: bool) -> None:
        if isinstance(items, Mapping):
            pairs = [(str(key), value) for key, value in items.items()]
        elif isinstance(items, (list, tuple)):
            pairs = [(str(index), value) for index, value in enumerate(items)]
        else:
            pairs = []

        options = self.descriptor.options
        keys = {key for key, _ in pairs}
        if not submitting or options["allow_delete"]:
            for name in [n for n in self._children if n not in keys]:
                del self._children[name]

        for name, item in pairs:
            if name not in self._children:
                if submitting and not options["allow_add"]:
                    continue
                self._build_entry(name)
            entry = self._children[name]
            if submitting:
                entry._submit_values(item)
            else:
                entry.set_data(item)

        if submitting:
            for name, entry in self._children.items():
                if name not in keys:
                    entry._submit_values(None)

    def _check_entry_count(self) -> None:
        options = self.descriptor.options
        count = len(self._children)
        if options["min"] and count < options["min"]:
            self.errors.add(FormError(
                options["min_message"],
                parameters={"limit": options["min"], "count": count},
                origin=self,
            ))
        if options["max"] and count > options["max"]:
            self.errors.add(FormError(
                options["max_message"],
                parameters={"limit": options["max"], "count": count},
                origin=self,
            ))

    # -----------------------------------------------------------------
    # Submission
    # -----------------------------------------------------------------

    def handle_request(self, request: Mapping[str, Any] | None) -> "Form":
        """Submit ``request[name]`` if the request carries this form's name.

        Requests without the key leave the form untouched.
        """
        if isinstance(request, Mapping) and self.name in request:
            self.submit(request[self.name])
        return self

    def submit(self, data: Any) -> "Form":
        """Submit raw view data, reverse-transform it and validate.

        Invalid data never raises; it produces errors on the affected
        nodes.

        Raises:
            FormStateError: If the form was already submitted.
            CsrfTokenException: If CSRF protection is on and the token is
                missing, expired or wrong. Nothing is submitted in that case.
        """
        self._assert_ready("submit")
        self._check_csrf(data)
        self._submit_values(data)
        self._validate()

        errors = self.get_errors(deep=True)
        if errors.has_blocking():
            self._dispatch(FormEvents.VALIDATION_ERROR, self.get_data(), {"errors": errors})
        else:
            self._dispatch(FormEvents.VALIDATION_SUCCESS, self.get_data())
        self._dispatch(FormEvents.POST_SUBMIT, self.get_data())
        logger.debug(
            "Submitted form '%s': %d blocking error(s)",
            self.name, len(self.get_errors(deep=True).blocking()),
        )
        return self

    def _check_csrf(self, data: Any) -> None:
        if not self.config.csrf_protection:
            return
        token = data.get(self.config.csrf_field_name) if isinstance(data, Mapping) else None
        self.factory.csrf_manager.validate_token(self.config.token_id, token)

    def _submit_values(self, raw: Any) -> None:
        # Children may still be added or removed by PRE_SUBMIT listeners.
        raw = self._dispatch(FormEvents.PRE_SUBMIT, raw).data
        self.state = FormState.SUBMITTED
        self._submitted_value = raw

        if self.is_button:
            self._clicked = raw is not None
            return
        if self.is_collection:
            self._set_entries(raw, submitting=True)
            self._dispatch(FormEvents.SUBMIT, self.get_data())
            return
        if self.is_compound:
            values = raw if isinstance(raw, Mapping) else {}
            for child in self:
                child._submit_values(values.get(child.name))
            self._dispatch(FormEvents.SUBMIT, self.get_data())
            return

        options = self.descriptor.options if self.descriptor is not None else {}
        if options.get("disabled"):
            return

        value = raw
        if (value is None or value == "") and options.get("empty_data") is not None:
            empty = options["empty_data"]
            value = empty(self) if callable(empty) else empty

        try:
            self._data = self.chain.reverse_transform(value)
        except TransformationError as e:
            self._data = None
            self._transformation_failed = True
            self.errors.add(FormError(
                options.get("invalid_message", "This value is not valid."),
                parameters={"value": raw},
                cause=e.with_field(self.full_path or self.name),
                origin=self,
            ))
            logger.debug("Transformation failed for '%s': %s", self.full_path or self.name, e)
            return

        self._data = self._dispatch(FormEvents.SUBMIT, self._data).data

    def is_clicked(self) -> bool:
        return self._clicked

    def _walk(self, prefix: str = "") -> Iterator[tuple[str, "Form"]]:
        for child in self:
            path = f"{prefix}.{child.name}" if prefix else child.name
            yield path, child
            if child.is_compound:
                yield from child._walk(path)

    def _validation_data(self) -> Any:
        if self.is_collection:
            return [child._validation_data() for child in self]
        if self.is_compound:
            return {child.name: child._validation_data() for child in self if not child.is_button}
        return self._data

    def _validate(self) -> None:
        rules: dict[str, list[Constraint]] = {}
        attributes: dict[str, str] = {}
        constraints = list(self._constraints)

        if self.descriptor is not None and not self.is_compound and not self._transformation_failed:
            rules[self.name] = self.descriptor.constraints
            attributes[self.name] = self.factory.translate(self.label)

        for path, node in self._walk():
            constraints.extend(node._constraints)
            if node.is_collection:
                node._check_entry_count()
            if node.descriptor is None or node.is_button or node._transformation_failed:
                continue
            if node.descriptor.constraints:
                rules[path] = node.descriptor.constraints
                attributes[path] = self.factory.translate(node.label)

        validator = Validator(
            rules,
            messages={**self.factory.messages, **self.config.messages},
            attributes=attributes,
            constraints=constraints,
            translator=self.factory.translator,
        )
        data = self._validation_data()
        if not self.is_compound:
            data = {self.name: data}
        result = validator.validate(data, groups=self.config.validation_groups)
        for violation in result.violations:
            self._attach(violation)

    def _attach(self, violation: Violation) -> None:
        target = self
        remainder: list[str] = []
        if violation.path and self.is_compound:
            parts = violation.path.split(".")
            consumed = 0
            for part in parts:
                if target.is_compound and part in target._children:
                    target = target._children[part]
                    consumed += 1
                else:
                    break
            remainder = parts[consumed:]
        target.errors.add(FormError(
            violation.template,
            level=violation.level,
            path=".".join(remainder) or None,
            parameters=violation.parameters,
            cause=violation,
            origin=target,
        ))

    # -----------------------------------------------------------------
    # State and errors
    # -----------------------------------------------------------------

    def is_submitted(self) -> bool:
        return self.state is FormState.SUBMITTED

    def is_valid(self) -> bool:
        """True once submitted without blocking errors anywhere in the tree.

        Always False before submission.
        """
        if self.state is not FormState.SUBMITTED:
            return False
        return not self.get_errors(deep=True).has_blocking()

    def add_error(
        self,
        error: FormError | str,
        level: ErrorLevel = ErrorLevel.ERROR,
        path: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> "Form":
        if isinstance(error, str):
            error = FormError(error, level=level, path=path, parameters=parameters, origin=self)
        self.errors.add(error)
        return self

    def get_errors(self, deep: bool = False) -> ErrorList:
        """This node's errors plus the child errors that bubble up.

        With ``deep``, every descendant error is included regardless of the
        bubbling configuration. Child paths are prefixed with child names.
        """
        strategy = ErrorBubblingStrategy() if deep else self.config.error_bubbling
        return ErrorList(self.errors).extend(strategy.collect_errors(self))

    def get_errors_as_dict(self) -> dict[str, Any]:
        return self.get_errors(deep=True).to_dict()

    def get_errors_flattened(self) -> dict[str, list[str]]:
        return self.get_errors(deep=True).to_flat()

    # -----------------------------------------------------------------
    # Views
    # -----------------------------------------------------------------

    def _html_name(self) -> str:
        parent = self.parent
        if parent is None:
            return self.name
        return f"{parent._html_name()}[{self.name}]"

    def _html_id(self) -> str:
        parent = self.parent
        return self.name if parent is None else f"{parent._html_id()}_{self.name}"

    def create_view(self, theme: Theme | None = None) -> FormView:
        """Build the render-ready view of this node and its children."""
        theme = theme or self.factory.theme
        descriptor = self.descriptor
        options = descriptor.options if descriptor is not None else {}
        input_type = descriptor.input_type if descriptor is not None else "form"

        attr = dict(self.config.attr) if descriptor is None else dict(descriptor.attributes)
        vars: dict[str, Any] = {
            "name": self.name,
            "full_name": self._html_name(),
            "id": self._html_id(),
            "type": self.type,
            "input_type": input_type,
            "label": self.factory.translate(self.label),
            "help": self.factory.translate(options.get("help")),
            "required": bool(options.get("required")),
            "disabled": bool(options.get("disabled")),
            "attr": attr,
            "label_attr": dict(options.get("label_attr") or {}),
            "wrapper_attr": dict(options.get("wrapper_attr") or {}),
            "errors": [error.message for error in self.errors],
            "valid": not self.errors.has_blocking(),
            "submitted": self.is_submitted(),
            "compound": self.is_compound,
            "template": theme.template_for(input_type),
            "classes": theme.css_classes(input_type),
        }

        if self.is_root:
            vars["method"] = self.config.method
            vars["action"] = self.config.action
        if not self.is_compound:
            value = self.get_view_data()
            if options.get("always_empty"):
                value = ""
            if self.is_csrf_field:
                root = self.root
                value = self.factory.csrf_manager.generate_token(root.config.token_id)
            vars["value"] = value
        if "choices" in options:
            selected = self._data if isinstance(self._data, list) else [self._data]
            vars["choices"] = [
                {
                    "value": key,
                    "label": self.factory.translate(str(label)),
                    "selected": any(str(key) == str(s) for s in selected if s is not None),
                }
                for key, label in options["choices"].items()
            ]
            vars["multiple"] = options.get("multiple", False)
            vars["expanded"] = options.get("expanded", False)
        if input_type == "checkbox" and "choices" not in options:
            vars["checked"] = bool(self._data)

        view = FormView(vars)
        for child in self:
            view.add_child(child.name, child.create_view(theme))
        return view

    def render(self, renderer: Renderer, theme: Theme | None = None) -> str:
        """Render the form through a template engine adapter.

        Raises:
            LookupError: If the renderer does not know the form's template.
        """
        view = self.create_view(theme)
        template = view.vars["template"]
        if not renderer.exists(template):
            raise LookupError(f"Template '{template}' does not exist")
        return renderer.render(template, view.to_dict())
