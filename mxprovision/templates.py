"""Template text and package lists consumed by the config writer and steps."""

PACKAGES = [
    "apache2",
    "mysql-server",
    "php-cli",
    "php-mysql",
    "php-mbstring",
    "php-xml",
    "php-curl",
    "mailutils",
    "postfix",
    "unzip",
    "wget",
    "tar",
    "opendkim",
    "opendkim-tools",
    "net-tools",
    "bind9",
    "bind9utils",
    "bind9-doc",
    "dnsutils",
    "certbot",
    "python3-certbot-apache",
]

ISPCONFIG_URL = "https://www.ispconfig.org/downloads/ISPConfig-3-stable.tar.gz"

# -----------------------------------------------------------------------------
# Host identity
# -----------------------------------------------------------------------------
HOSTS = """
127.0.0.1 localhost
127.0.1.1 {{ hostname }} {{ short_hostname }}
{{ server_ip }} {{ hostname }} {{ short_hostname }}

# IPv6 loopback
::1 localhost ip6-localhost ip6-loopback
ff02::1 ip6-allnodes
ff02::2 ip6-allrouters
"""

# -----------------------------------------------------------------------------
# BIND9
# -----------------------------------------------------------------------------
NAMED_CONF_LOCAL = """
// named.conf.local - managed by mxprovision
{% for zone in zones %}
zone "{{ zone.origin }}" {
    type master;
    file "{{ zone.file }}";
};
{% endfor %}
"""

ZONE = """
$TTL    {{ zone.ttl }}
@       IN      SOA     {{ zone.primary_ns }}. {{ zone.hostmaster }}. (
                        {{ zone.serial }} ; Serial
                        604800     ; Refresh
                        86400      ; Retry
                        2419200    ; Expire
                        604800 )   ; Negative Cache TTL
;
{% for ns in zone.ns %}
@       IN      NS      {{ ns }}.
{% endfor %}
{% for name, address in zone.a_records %}
{{ "%-8s"|format(name) }}IN      A       {{ address }}
{% endfor %}
{% if zone.mx %}
@       IN      MX      {{ zone.mx }}
{% endif %}
{% for name, text in zone.txt_records %}
{{ "%-8s"|format(name) }}IN      TXT     "{{ text }}"
{% endfor %}
"""

# -----------------------------------------------------------------------------
# OpenDKIM
# -----------------------------------------------------------------------------
OPENDKIM_CONF = """
Syslog                  yes
LogWhy                  yes
UMask                   002
Domain                  {{ domain }}
KeyTable                {{ key_table }}
SigningTable            refile:{{ signing_table }}
ExternalIgnoreList      {{ trusted_hosts }}
InternalHosts           {{ trusted_hosts }}
Socket                  {{ socket }}
UserID                  opendkim
Canonicalization        relaxed/simple
OversignHeaders         From
AutoRestart             yes
PidFile                 /run/opendkim/opendkim.pid
"""

KEY_TABLE = """
{{ selector }}._domainkey.{{ domain }} {{ domain }}:{{ selector }}:{{ private_key }}
"""

SIGNING_TABLE = """
*@{{ domain }} {{ selector }}._domainkey.{{ domain }}
"""

TRUSTED_HOSTS = """
127.0.0.1
localhost
{{ server_ip }}
{{ domain }}
*.{{ domain }}
"""

# Debian passes SOCKET from this file on the command line, overriding opendkim.conf
OPENDKIM_DEFAULTS = """
RUNDIR=/run/opendkim
SOCKET={{ socket }}
USER=opendkim
GROUP=opendkim
PIDFILE=/run/opendkim/opendkim.pid
EXTRAAFTER=
"""

OPENDKIM_UNIT_OVERRIDE = """
[Service]
ExecStart=
ExecStart=/usr/sbin/opendkim -P /run/opendkim/opendkim.pid -p {{ socket }}
"""

DKIM_TXT = """
{{ selector }}._domainkey	IN	TXT	( "v=DKIM1; h=sha256; k=rsa; "
	  {{ public_key_chunks }} )  ; ----- DKIM key {{ selector }} for {{ domain }}
"""

# postconf -e settings wiring Postfix to the OpenDKIM milter socket
POSTFIX_MILTER = {
    "milter_default_action": "accept",
    "milter_protocol": "6",
    "smtpd_milters": "local:opendkim/opendkim.sock",
    "non_smtpd_milters": "local:opendkim/opendkim.sock",
}

# -----------------------------------------------------------------------------
# Final instructions
# -----------------------------------------------------------------------------
SUMMARY = """
Primary domain is accessible at: https://{{ hostname }}
Mail MX record points to: {{ mail_host }}
Update your domain provider's nameservers to:
  {{ ns1 }} - {{ server_ip }}
  {{ ns2 }} - {{ server_ip }}
{% if dkim_record %}
Publish this DKIM record for {{ domain }}:
{{ dkim_record }}
{% endif %}
{% if install_panel %}
Access ISPConfig at: https://{{ hostname }}:8080
{% endif %}
"""
