"""
Script Synthesizer - Builds the storefront loader snippet and the popup runtime.

Both artifacts are pure functions of their inputs. The snippet is store
specific; the runtime is shared by every store and only depends on the
public base URL of this service.
"""

import json
import logging
import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from string import Template
from typing import Optional, Tuple
from urllib.parse import urlparse

from newsletter_popup.utils.domains import normalize_domain
from newsletter_popup.utils.email_validation import TEMPORARY_EMAIL_DOMAINS

logger = logging.getLogger(__name__)

RUNTIME_SCRIPT_NAME = "newsletter-popup.js"
RUNTIME_SCRIPT_PATH = f"/js/{RUNTIME_SCRIPT_NAME}"

ATTR_STORE_ID = "data-store-id"
ATTR_POPUP_CONFIG = "data-popup-config"
ATTR_INTEGRATION_TYPE = "data-integration-type"
ATTR_STORE_DOMAIN = "data-store-domain"
ATTR_SCRIPT_VERSION = "data-script-version"
ATTR_GENERATED_AT = "data-generated-at"

INTEGRATION_TYPE = "shopify"
POPUP_CONFIG_MODE = "auto"

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 5
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Values written into single-quoted JS string literals
_SAFE_VALUE = re.compile(r"^[A-Za-z0-9._:\-]+$")
_UNSAFE_URL_CHARS = re.compile(r"[\s'\"<>\\`]")


@dataclass(frozen=True)
class GeneratedScript:
    """A rendered integration script and the values it was rendered from."""

    snippet: str
    runtime: str
    version: str
    timestamp: str
    base_url: str


def format_timestamp(moment: datetime) -> str:
    """Format an instant as ISO-8601 UTC with millisecond precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def mint_script_version(store_id: str, now: Optional[datetime] = None) -> Tuple[str, str]:
    """
    Mint a new (version, timestamp) pair for a store.

    The version is <first storeId segment>_<epoch millis>_<random suffix>,
    and the timestamp is the same instant in ISO-8601 form.

    Args:
        store_id: Store identifier
        now: Instant to mint for (defaults to the current time)

    Returns:
        Tuple of (version, timestamp)
    """
    if not store_id or not store_id.strip():
        raise ValueError("Store ID is required")

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    epoch_millis = (now - _EPOCH) // timedelta(milliseconds=1)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    store_prefix = store_id.strip().split("-")[0]

    version = f"{store_prefix}_{epoch_millis}_{suffix}"
    timestamp = format_timestamp(_EPOCH + timedelta(milliseconds=epoch_millis))
    return version, timestamp


def normalize_base_url(base_url: Optional[str]) -> str:
    """
    Validate the public base URL and strip any trailing slash.

    Raises:
        ValueError: If the URL is not an absolute http(s) URL or contains
            characters that cannot be embedded in a script literal
    """
    if not base_url or not base_url.strip():
        raise ValueError("Base URL is required")

    base_url = base_url.strip().rstrip("/")
    if _UNSAFE_URL_CHARS.search(base_url):
        raise ValueError(f"Base URL contains invalid characters: {base_url}")

    parsed = urlparse(base_url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError(f"Base URL must be an absolute http(s) URL: {base_url}")
    if parsed.query or parsed.fragment:
        raise ValueError(f"Base URL must not carry a query or fragment: {base_url}")

    return base_url


def _require_safe(name: str, value: Optional[str]) -> str:
    if not value or not value.strip():
        raise ValueError(f"{name} is required")
    value = value.strip()
    if not _SAFE_VALUE.match(value):
        raise ValueError(f"{name} contains invalid characters: {value!r}")
    return value


def runtime_script_url(base_url: str, version: str, timestamp: str) -> str:
    """Cache-busted URL the snippet loads the runtime from."""
    return f"{base_url}{RUNTIME_SCRIPT_PATH}?v={timestamp}&id={version}"


_SNIPPET_TEMPLATE = Template(
    """<!-- Foxx Newsletter Popup Integration Script -->
<!-- Add this code to your theme.liquid file, just before the closing </body> tag -->
<!-- Generated: $timestamp | Unique ID: $version -->
<script>
(function() {
  var script = document.createElement('script');
  script.src = '$src';
  script.async = true;
  script.setAttribute('$attr_store_id', '$store_id');
  script.setAttribute('$attr_popup_config', '$popup_config');
  script.setAttribute('$attr_integration_type', '$integration_type');
  script.setAttribute('$attr_store_domain', '$store_domain');
  script.setAttribute('$attr_script_version', '$version');
  script.setAttribute('$attr_generated_at', '$timestamp');
  document.head.appendChild(script);
})();
</script>"""
)


def render_snippet(
    store_id: str,
    target_domain: str,
    base_url: str,
    version: str,
    timestamp: str,
) -> str:
    """
    Render the loader snippet a store owner pastes into their theme.

    The output depends only on the arguments, so the same inputs always
    produce byte-identical text.

    Args:
        store_id: Store identifier
        target_domain: Storefront URL or hostname the popup runs on
        base_url: Public base URL of this service
        version: Script version token
        timestamp: Generation timestamp paired with the version

    Returns:
        HTML snippet with an inline loader script

    Raises:
        ValueError: On empty or malformed inputs
    """
    store_id = _require_safe("Store ID", store_id)
    store_domain = normalize_domain(target_domain)
    base_url = normalize_base_url(base_url)
    version = _require_safe("Script version", version)
    timestamp = _require_safe("Script timestamp", timestamp)

    return _SNIPPET_TEMPLATE.substitute(
        src=runtime_script_url(base_url, version, timestamp),
        store_id=store_id,
        store_domain=store_domain,
        version=version,
        timestamp=timestamp,
        popup_config=POPUP_CONFIG_MODE,
        integration_type=INTEGRATION_TYPE,
        attr_store_id=ATTR_STORE_ID,
        attr_popup_config=ATTR_POPUP_CONFIG,
        attr_integration_type=ATTR_INTEGRATION_TYPE,
        attr_store_domain=ATTR_STORE_DOMAIN,
        attr_script_version=ATTR_SCRIPT_VERSION,
        attr_generated_at=ATTR_GENERATED_AT,
    )


def render_runtime_script(base_url: str) -> str:
    """
    Render the popup runtime served at RUNTIME_SCRIPT_PATH.

    Args:
        base_url: Public base URL the runtime calls back into

    Returns:
        Self-contained JavaScript source
    """
    base_url = normalize_base_url(base_url)
    return (
        _RUNTIME_TEMPLATE
        .replace("__FOXX_API_BASE__", json.dumps(base_url))
        .replace("__FOXX_TEMP_EMAIL_DOMAINS__", json.dumps(sorted(TEMPORARY_EMAIL_DOMAINS)))
    )


def generate_script(
    store_id: str,
    target_domain: str,
    base_url: str,
    version: str,
    timestamp: str,
) -> GeneratedScript:
    """Render both artifacts for a store."""
    base_url = normalize_base_url(base_url)
    snippet = render_snippet(store_id, target_domain, base_url, version, timestamp)
    logger.debug(f"Rendered integration script {version} for store {store_id}")
    return GeneratedScript(
        snippet=snippet,
        runtime=render_runtime_script(base_url),
        version=version,
        timestamp=timestamp,
        base_url=base_url,
    )


_RUNTIME_TEMPLATE = r"""/**
 * Foxx Newsletter Popup Script
 * Dynamic newsletter popup with domain verification
 */
(function () {
  'use strict';

  var scriptTag = document.currentScript || document.querySelector('script[data-store-id]');
  if (!scriptTag) {
    console.warn('Foxx Newsletter: Script tag with data-store-id not found');
    return;
  }

  var STORE_ID = scriptTag.getAttribute('data-store-id');
  var STORE_DOMAIN = scriptTag.getAttribute('data-store-domain');

  if (!STORE_ID) {
    console.warn('Foxx Newsletter: Missing data-store-id attribute');
    return;
  }

  if (STORE_DOMAIN && window.location.hostname.indexOf(STORE_DOMAIN) === -1) {
    console.warn('Foxx Newsletter: Domain mismatch - script not authorized for this domain');
    return;
  }

  if (window.foxxNewsletterLoaded) {
    console.log('Foxx Newsletter: Already loaded');
    return;
  }
  window.foxxNewsletterLoaded = true;

  var API_BASE = __FOXX_API_BASE__;
  var TEMP_EMAIL_DOMAINS = __FOXX_TEMP_EMAIL_DOMAINS__;
  var STORAGE_KEY = 'foxx_newsletter_' + STORE_ID;
  var TIME_KEY = STORAGE_KEY + '_time';
  var SESSION_KEY = STORAGE_KEY + '_session';
  var SUPPRESSION_WINDOW_MS = 24 * 60 * 60 * 1000;
  var SESSION_ID = 'session_' + Date.now() + '_' + Math.random().toString(36).substr(2, 9);
  var TRIGGER_DELAYS = { 'immediate': 1000, 'after-5s': 5000 };
  var EMAIL_PATTERN = /^[^\s@]+@[^\s@]+\.[^\s@]+$/;
  var FIELD_DEFINITIONS = [
    { key: 'email', tag: 'input', type: 'email', placeholder: 'Enter your email address', required: true },
    { key: 'name', tag: 'input', type: 'text', placeholder: 'Full Name' },
    { key: 'phone', tag: 'input', type: 'tel', placeholder: 'Phone Number' },
    { key: 'company', tag: 'input', type: 'text', placeholder: 'Company Name' },
    { key: 'address', tag: 'textarea', placeholder: 'Address' }
  ];

  var POPUP_CONFIG = null;
  var subscribedThisPage = false;

  // Storage access throws in some privacy modes
  function storageGet(kind, key) {
    try { return window[kind].getItem(key); } catch (e) { return null; }
  }

  function storageSet(kind, key, value) {
    try { window[kind].setItem(key, value); } catch (e) { /* unavailable */ }
  }

  function storageRemove(kind, key) {
    try { window[kind].removeItem(key); } catch (e) { /* unavailable */ }
  }

  function clearClientState() {
    storageRemove('localStorage', STORAGE_KEY);
    storageRemove('localStorage', TIME_KEY);
    storageRemove('sessionStorage', SESSION_KEY);
  }

  function apiUrl(path) {
    return API_BASE + path;
  }

  function loadConfig() {
    return fetch(apiUrl('/api/popup-config/' + encodeURIComponent(STORE_ID)), { credentials: 'omit' })
      .then(function (response) {
        if (!response.ok) {
          throw new Error('Popup configuration request failed with status ' + response.status);
        }
        return response.json();
      });
  }

  // Resolves true/false, or null when the server cannot be reached
  function fetchSubscriptionStatus(email) {
    var path = '/api/stores/' + encodeURIComponent(STORE_ID) + '/check-subscription/' + encodeURIComponent(email);
    return fetch(apiUrl(path), { credentials: 'omit' })
      .then(function (response) {
        if (!response.ok) { return null; }
        return response.json().then(function (result) { return !!result.isSubscribed; });
      })
      .catch(function () { return null; });
  }

  // Suppression tiers, consulted in order:
  //   durable record in localStorage (recent subscription, confirmed by the server)
  //   session flag in sessionStorage (popup already shown in this tab session)
  // The server's answer wins whenever it disagrees with client state.
  function resolveSuppression(config) {
    var email = storageGet('localStorage', STORAGE_KEY);
    var savedAt = parseInt(storageGet('localStorage', TIME_KEY) || '', 10);
    var sessionFlag = storageGet('sessionStorage', SESSION_KEY);

    if (email && config.suppressAfterSubscription) {
      var isRecent = email.indexOf('@') > 0 && !isNaN(savedAt) && (Date.now() - savedAt) < SUPPRESSION_WINDOW_MS;
      if (isRecent) {
        return fetchSubscriptionStatus(email).then(function (isSubscribed) {
          if (isSubscribed === true) { return true; }
          if (isSubscribed === false) {
            clearClientState();
            return false;
          }
          return !!sessionFlag;
        });
      }
      storageRemove('localStorage', STORAGE_KEY);
      storageRemove('localStorage', TIME_KEY);
      email = null;
    }

    if (!email && sessionFlag === 'subscribed') {
      // Orphaned: the durable record it belonged to is gone
      storageRemove('sessionStorage', SESSION_KEY);
      return Promise.resolve(false);
    }

    return Promise.resolve(!!sessionFlag);
  }

  function isTemporaryDomain(domain) {
    for (var i = 0; i < TEMP_EMAIL_DOMAINS.length; i++) {
      var blocked = TEMP_EMAIL_DOMAINS[i];
      if (domain === blocked || domain.slice(-(blocked.length + 1)) === '.' + blocked) {
        return true;
      }
    }
    return false;
  }

  function lowered(list) {
    var result = [];
    for (var i = 0; i < (list || []).length; i++) {
      var value = String(list[i] || '').trim().toLowerCase();
      if (value) { result.push(value); }
    }
    return result;
  }

  function validateEmail(email) {
    email = (email || '').trim();
    if (!EMAIL_PATTERN.test(email)) {
      return 'Please enter a valid email address.';
    }
    var domain = email.split('@').pop().toLowerCase();
    if (isTemporaryDomain(domain)) {
      return 'Temporary email addresses are not allowed. Please use a permanent email address.';
    }
    var rules = (POPUP_CONFIG && POPUP_CONFIG.emailValidation) || {};
    if (rules.companyEmailsOnly) {
      if (lowered(rules.blockedDomains).indexOf(domain) !== -1) {
        return 'Please use your company email address.';
      }
      var allowed = lowered(rules.allowedDomains);
      if (allowed.length && allowed.indexOf(domain) === -1) {
        return 'Please use an approved company email domain.';
      }
    }
    return null;
  }

  function el(tag, attrs, children) {
    var node = document.createElement(tag);
    for (var key in (attrs || {})) {
      if (!Object.prototype.hasOwnProperty.call(attrs, key)) { continue; }
      if (key === 'text') {
        node.textContent = attrs[key];
      } else {
        node.setAttribute(key, attrs[key]);
      }
    }
    for (var i = 0; i < (children || []).length; i++) {
      if (children[i]) { node.appendChild(children[i]); }
    }
    return node;
  }

  function injectStyles() {
    if (document.getElementById('foxx-newsletter-styles')) { return; }
    var css = [
      '.foxx-backdrop{position:fixed;inset:0;background:rgba(0,0,0,.55);display:flex;align-items:center;justify-content:center;z-index:2147483000;font-family:inherit}',
      '.foxx-dialog{position:relative;background:#fff;color:#111;max-width:440px;width:92%;border-radius:10px;padding:32px 28px;box-shadow:0 20px 50px rgba(0,0,0,.3);text-align:center}',
      '.foxx-slide-in .foxx-dialog{animation:foxx-slide .35s ease-out}',
      '.foxx-fade-in .foxx-dialog{animation:foxx-fade .35s ease-out}',
      '@keyframes foxx-slide{from{transform:translateY(40px);opacity:0}to{transform:none;opacity:1}}',
      '@keyframes foxx-fade{from{opacity:0}to{opacity:1}}',
      '.foxx-close{position:absolute;top:10px;right:14px;background:none;border:0;font-size:24px;line-height:1;cursor:pointer;color:#666}',
      '.foxx-title{margin:0 0 10px;font-size:22px;font-weight:700;letter-spacing:.5px}',
      '.foxx-subtitle{margin:0 0 20px;font-size:15px;line-height:1.5;color:#444}',
      '.foxx-form input,.foxx-form textarea{display:block;width:100%;box-sizing:border-box;margin:0 0 10px;padding:12px;border:1px solid #ccc;border-radius:6px;font-size:15px}',
      '.foxx-submit{width:100%;padding:13px;border:0;border-radius:6px;background:#111;color:#fff;font-size:15px;font-weight:700;cursor:pointer}',
      '.foxx-submit[disabled]{opacity:.6;cursor:wait}',
      '.foxx-message{min-height:18px;margin:8px 0 0;font-size:13px;color:#c0392b}',
      '.foxx-code{display:inline-block;margin:14px 0;padding:12px 22px;border:2px dashed #111;border-radius:6px;font-size:22px;font-weight:700;letter-spacing:2px;cursor:pointer}'
    ].join('\n');
    document.head.appendChild(el('style', { id: 'foxx-newsletter-styles', text: css }));
  }

  function closePopup() {
    var backdrop = document.getElementById('foxx-newsletter-backdrop');
    if (backdrop && backdrop.parentNode) {
      backdrop.parentNode.removeChild(backdrop);
    }
  }

  function showMessage(form, message) {
    var slot = form.querySelector('.foxx-message');
    if (slot) { slot.textContent = message || ''; }
  }

  function setBusy(form, busy) {
    var button = form.querySelector('.foxx-submit');
    if (!button) { return; }
    button.disabled = busy;
    button.textContent = busy ? 'Submitting...' : (POPUP_CONFIG.buttonText || 'SUBMIT');
  }

  function errorMessage(body) {
    if (body && body.detail) {
      if (typeof body.detail === 'string') { return body.detail; }
      if (body.detail.message) { return body.detail.message; }
    }
    return 'Subscription failed. Please try again.';
  }

  function buildForm() {
    var fields = POPUP_CONFIG.fields || {};
    var inputs = [];
    for (var i = 0; i < FIELD_DEFINITIONS.length; i++) {
      var def = FIELD_DEFINITIONS[i];
      // Email is always collected; the other fields follow the config
      if (!def.required && !fields[def.key]) { continue; }
      var attrs = { name: def.key, placeholder: def.placeholder };
      if (def.type) { attrs.type = def.type; }
      if (def.required) { attrs.required = 'required'; }
      inputs.push(el(def.tag, attrs));
    }
    inputs.push(el('button', { type: 'submit', 'class': 'foxx-submit', text: POPUP_CONFIG.buttonText || 'SUBMIT' }));
    inputs.push(el('p', { 'class': 'foxx-message', role: 'alert' }));

    var form = el('form', { 'class': 'foxx-form', novalidate: 'novalidate' }, inputs);
    form.addEventListener('submit', handleSubmit);
    return form;
  }

  function showPopup() {
    if (!POPUP_CONFIG || document.getElementById('foxx-newsletter-backdrop')) { return; }
    injectStyles();

    var closeButton = el('button', { type: 'button', 'class': 'foxx-close', 'aria-label': 'Close', text: '×' });
    var dialog = el('div', { 'class': 'foxx-dialog', role: 'dialog', 'aria-modal': 'true' }, [
      closeButton,
      el('h2', { 'class': 'foxx-title', text: POPUP_CONFIG.title || '' }),
      el('p', { 'class': 'foxx-subtitle', text: POPUP_CONFIG.subtitle || '' }),
      buildForm()
    ]);
    var animation = POPUP_CONFIG.animation === 'fade-in' ? 'foxx-fade-in' : 'foxx-slide-in';
    var backdrop = el('div', { id: 'foxx-newsletter-backdrop', 'class': 'foxx-backdrop ' + animation }, [dialog]);

    closeButton.addEventListener('click', closePopup);
    backdrop.addEventListener('click', function (event) {
      if (event.target === backdrop) { closePopup(); }
    });

    document.body.appendChild(backdrop);
    if (!storageGet('sessionStorage', SESSION_KEY)) {
      storageSet('sessionStorage', SESSION_KEY, 'shown');
    }
  }

  function showSuccess(email, result) {
    var dialog = document.querySelector('#foxx-newsletter-backdrop .foxx-dialog');
    if (!dialog) { return; }
    var code = result.discountCode || POPUP_CONFIG.discountCode;
    var percentage = result.discountPercentage || POPUP_CONFIG.discountPercentage;

    var codeBox = el('div', { 'class': 'foxx-code', title: 'Click to copy', text: code });
    codeBox.addEventListener('click', function () {
      if (navigator.clipboard && navigator.clipboard.writeText) {
        navigator.clipboard.writeText(code).then(function () { codeBox.textContent = 'Copied!'; });
      }
    });
    var done = el('button', { type: 'button', 'class': 'foxx-submit', text: 'Continue Shopping' });
    done.addEventListener('click', closePopup);

    while (dialog.firstChild) { dialog.removeChild(dialog.firstChild); }
    dialog.appendChild(el('h2', { 'class': 'foxx-title', text: 'Welcome to the Family!' }));
    dialog.appendChild(el('p', { 'class': 'foxx-subtitle', text: 'Thanks for subscribing with ' + email + '. Here is your ' + percentage + '% discount code:' }));
    dialog.appendChild(codeBox);
    dialog.appendChild(done);
  }

  function handleSubmit(event) {
    event.preventDefault();
    var form = event.target;
    var payload = { sessionId: SESSION_ID };
    for (var i = 0; i < FIELD_DEFINITIONS.length; i++) {
      var input = form.elements[FIELD_DEFINITIONS[i].key];
      if (input && input.value && input.value.trim()) {
        payload[FIELD_DEFINITIONS[i].key] = input.value.trim();
      }
    }

    var problem = validateEmail(payload.email);
    if (problem) {
      showMessage(form, problem);
      return;
    }

    showMessage(form, '');
    setBusy(form, true);
    fetch(apiUrl('/api/subscribe/' + encodeURIComponent(STORE_ID)), {
      method: 'POST',
      credentials: 'omit',
      headers: { 'Content-Type': 'application/json' },
      body: JSON.stringify(payload)
    })
      .then(function (response) {
        return response.json().then(function (body) { return { ok: response.ok, body: body }; });
      })
      .then(function (result) {
        if (!result.ok) {
          setBusy(form, false);
          showMessage(form, errorMessage(result.body));
          return;
        }
        subscribedThisPage = true;
        storageSet('localStorage', STORAGE_KEY, payload.email);
        storageSet('localStorage', TIME_KEY, String(Date.now()));
        storageSet('sessionStorage', SESSION_KEY, 'subscribed');
        showSuccess(payload.email, result.body || {});
      })
      .catch(function (error) {
        console.error('Foxx Newsletter: Subscription error', error);
        setBusy(form, false);
        showMessage(form, 'An error occurred. Please try again later.');
      });
  }

  function onScrollPercent(threshold, callback) {
    var fired = false;
    function handler() {
      if (fired) { return; }
      var scrollable = document.documentElement.scrollHeight - window.innerHeight;
      var percent = scrollable > 0 ? (window.pageYOffset / scrollable) * 100 : 100;
      if (percent >= threshold) {
        fired = true;
        window.removeEventListener('scroll', handler);
        callback();
      }
    }
    window.addEventListener('scroll', handler, { passive: true });
  }

  function onExitIntent(callback) {
    var fired = false;
    document.addEventListener('mouseleave', function (event) {
      if (fired || event.clientY > 0) { return; }
      fired = true;
      callback();
    });
  }

  function scheduleTriggers(config) {
    var trigger = config.displayTrigger || 'immediate';
    if (trigger === 'scroll-50') {
      onScrollPercent(50, showPopup);
    } else if (trigger === 'exit-intent') {
      onExitIntent(showPopup);
    } else {
      setTimeout(showPopup, TRIGGER_DELAYS[trigger] || TRIGGER_DELAYS.immediate);
    }

    if (config.showExitIntentIfNotSubscribed && trigger !== 'exit-intent') {
      onExitIntent(function () {
        if (!subscribedThisPage && !storageGet('localStorage', STORAGE_KEY)) {
          showPopup();
        }
      });
    }
  }

  function start() {
    loadConfig()
      .then(function (config) {
        if (!config.isActive) {
          console.log('Foxx Newsletter: Popup is disabled for this store');
          return;
        }
        if (!config.isVerified || !config.hasActiveScript) {
          console.log('Foxx Newsletter: Installation not verified, popup will not be shown');
          return;
        }
        POPUP_CONFIG = config;
        return resolveSuppression(config).then(function (suppressed) {
          if (suppressed) {
            console.log('Foxx Newsletter: Popup suppressed for this visitor');
            return;
          }
          scheduleTriggers(config);
        });
      })
      .catch(function (error) {
        console.error('Foxx Newsletter: Failed to load popup configuration', error);
      });
  }

  if (document.readyState === 'loading') {
    document.addEventListener('DOMContentLoaded', start);
  } else {
    start();
  }
})();
"""
