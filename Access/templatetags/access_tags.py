from django import template
from django.template.base import token_kwargs

from ..guard import AccessContext
from ..middleware import access_context_for

register = template.Library()


class PermissionGuardNode(template.Node):
    def __init__(self, resource, action, options, nodelist_granted, nodelist_denied):
        self.resource = resource
        self.action = action
        self.options = options
        self.nodelist_granted = nodelist_granted
        self.nodelist_denied = nodelist_denied

    def _access(self, context):
        access = context.get("access")
        if isinstance(access, AccessContext):
            return access
        request = context.get("request")
        if request is None:
            return AccessContext(None, None)
        return access_context_for(request)

    def render(self, context):
        resource = str(self.resource.resolve(context))
        action = str(self.action.resolve(context))
        force_check = self.options.get("force_check")
        force_check = bool(force_check.resolve(context)) if force_check is not None else False

        guard = self._access(context).guard(resource, action, force_check=force_check)
        guard.evaluate()
        selected = guard.render(self.nodelist_granted, self.nodelist_denied)
        return selected.render(context) if selected else ""


@register.tag("permission_guard")
def do_permission_guard(parser, token):
    """
    {% permission_guard "campaigns" "update" force_check=True %}
        ...rendered when granted...
    {% else %}
        ...rendered when denied...
    {% endpermission_guard %}
    """
    bits = token.split_contents()
    tag_name = bits.pop(0)
    if len(bits) < 2:
        raise template.TemplateSyntaxError(f"{tag_name!r} needs a resource and an action")
    resource = parser.compile_filter(bits.pop(0))
    action = parser.compile_filter(bits.pop(0))
    options = token_kwargs(bits, parser)
    if bits or set(options) - {"force_check"}:
        raise template.TemplateSyntaxError(f"{tag_name!r} only accepts force_check=...")

    nodelist_granted = parser.parse(("else", "endpermission_guard"))
    if parser.next_token().contents == "else":
        nodelist_denied = parser.parse(("endpermission_guard",))
        parser.delete_first_token()
    else:
        nodelist_denied = template.NodeList()
    return PermissionGuardNode(resource, action, options, nodelist_granted, nodelist_denied)
